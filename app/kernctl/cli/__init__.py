"""CLI package for kernctl.

This package contains the Typer application and all subcommands.
"""

from kernctl.cli.main import app

__all__ = ["app"]
