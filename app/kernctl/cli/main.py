"""Main CLI application entry point.

Defines the Typer application and global options.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.logging import RichHandler

from kernctl import __version__
from kernctl.cli.commands import config, listing, update
from kernctl.utils.formatting import err_console

# Create main Typer app
app = typer.Typer(
    name="kernctl",
    help="Boot image lifecycle manager.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"kernctl version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route library logging to the error console.

    Args:
        verbose: Log everything from DEBUG up instead of warnings only.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(console=err_console, show_path=verbose, rich_tracebacks=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Configuration file (default: /etc/kernctl/config.toml).",
            envvar="KERNCTL_CONFIG",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
) -> None:
    """kernctl - Boot image lifecycle manager.

    Builds initramfs and unified EFI images for the newest installed kernel,
    rotates them on the boot partition and regenerates the bootloader menu.
    """
    configure_logging(verbose)

    # Store options in context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


# Register commands
app.add_typer(update.app, name="update")
app.add_typer(listing.app, name="list")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
