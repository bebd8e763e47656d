"""
main.py — reversetk Command Line

Offline helpers for the operator: decode a capability bitmask and render
a gateway call trace.

Usage:
    python -m reversetk caps 16381
    python -m reversetk trace hello_trace.json
    python -m reversetk --log-level DEBUG --config path/to/config.yaml caps 1021
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from reversetk.exceptions import CapabilityValidationError, ConfigError, MalformedPayloadError
from reversetk.gateway.call_trace import from_wire, render_tree
from reversetk.gateway.capabilities import KNOWN_CAPABILITIES, parse_capabilities
from reversetk.observability.logger import get_logger

log = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="reversetk",
        description="reversetk — gateway capability and call-trace inspection",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $REVERSETK_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    caps = sub.add_parser("caps", help="Show which capability bits a decimal bitmask sets")
    caps.add_argument("value", help="Decimal capability bitmask, e.g. 16381")
    caps.add_argument(
        "--only-set",
        action="store_true",
        help="List only the bits that are set",
    )

    trace = sub.add_parser("trace", help="Render a [name, {micros, calls}] call trace")
    trace.add_argument("path", help="JSON file holding the trace list ('-' for stdin)")

    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace) -> None:
    from reversetk.config.settings import load_settings
    from reversetk.observability.logger import setup_logging_from_settings

    settings = load_settings(args.config)
    settings.validate_all()
    setup_logging_from_settings(settings, level=args.log_level)


def show_capabilities(console: Console, text: str, only_set: bool = False) -> int:
    mask = parse_capabilities(text)
    table = Table(
        title=f"Capabilities {mask} (0x{mask:08x})",
        box=box.SIMPLE_HEAVY,
        header_style="bold cyan",
    )
    table.add_column("Bit", justify="right")
    table.add_column("Name")
    table.add_column("Set", justify="center")
    table.add_column("Description", style="dim")
    for flag in KNOWN_CAPABILITIES:
        enabled = bool(mask & flag.value)
        if only_set and not enabled:
            continue
        table.add_row(
            str(flag.bit),
            flag.name,
            "[green]✓[/green]" if enabled else "[red]✗[/red]",
            flag.description,
        )
    console.print(table)
    return 0


def show_trace(console: Console, path: str) -> int:
    raw = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    nodes = from_wire(json.loads(raw))
    # Plain output so the tree can be diffed against the client's own.
    console.print(render_tree(nodes), end="", markup=False, highlight=False, soft_wrap=True, emoji=False)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    console = Console()
    err = Console(stderr=True)

    try:
        bootstrap(args)
    except (ConfigError, ValidationError) as e:
        err.print(str(e), style="bold red", markup=False)
        return 2

    try:
        if args.command == "caps":
            return show_capabilities(console, args.value, args.only_set)
        if args.command == "trace":
            return show_trace(console, args.path)
    except CapabilityValidationError as e:
        log.debug("cli.invalid_capabilities", value=args.value)
        err.print(str(e), style="red", markup=False)
        return 1
    except (MalformedPayloadError, ValueError, OSError) as e:
        log.debug("cli.invalid_trace", error=str(e))
        err.print(f"Could not read call trace: {e}", style="red", markup=False)
        return 1
    return 2


def run() -> None:
    sys.exit(main())
