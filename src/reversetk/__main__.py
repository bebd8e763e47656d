"""Allow `python -m reversetk` to launch the command line."""

import sys

from reversetk.main import main

sys.exit(main())
