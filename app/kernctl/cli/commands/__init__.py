"""CLI commands for kernctl.

This package contains all subcommand implementations.
"""

from kernctl.cli.commands import config, listing, update

__all__ = ["config", "listing", "update"]
