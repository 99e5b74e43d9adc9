"""Config inspection and initialization commands.

Provides commands to print the effective configuration and to write a
default configuration file.
"""

from pathlib import Path
from typing import Annotated

import tomli_w
import typer
from rich.markup import escape
from rich.syntax import Syntax

from kernctl.core.config import (
    ConfigError,
    KernctlConfig,
    config_to_dict,
    require_config,
    save_config,
)
from kernctl.core.paths import get_config_path
from kernctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Show or initialize the configuration.",
    no_args_is_help=True,
)


@app.command()
def show(ctx: typer.Context) -> None:
    """Print the effective configuration, defaults included."""
    obj = ctx.obj or {}
    path = obj.get("config_path") or get_config_path()
    config = require_config(path)

    text = tomli_w.dumps(config_to_dict(config))
    console.print(f"[muted]# {escape(str(path))}[/]", highlight=False)
    console.print(Syntax(text, "toml", background_color="default"))


@app.command()
def init(
    ctx: typer.Context,
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            "-p",
            help="Where to write the configuration (default: the active config path).",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite an existing configuration.",
        ),
    ] = False,
) -> None:
    """Write a default configuration file.

    Examples:
        kernctl config init                       # Write /etc/kernctl/config.toml
        kernctl config init --path ./kernctl.toml # Write somewhere else
    """
    obj = ctx.obj or {}
    target = path or obj.get("config_path") or get_config_path()

    if target.exists() and not force:
        print_error(f"Config already exists: {escape(str(target))}")
        print_info("Use --force to overwrite it.")
        raise typer.Exit(code=1)

    try:
        saved = save_config(KernctlConfig(), target)
    except ConfigError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e

    print_success(f"Wrote default configuration to {escape(str(saved))}")
