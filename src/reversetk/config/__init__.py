"""config/ — runtime settings."""
