"""Update command implementation.

Builds boot images for the newest kernel, rotates them on the boot
partition and regenerates the bootloader menu.
"""

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from kernctl.cli.display import create_retention_table, print_kernel, print_retention_summary
from kernctl.core.builder import BuildError, BuildFailedError
from kernctl.core.config import require_config
from kernctl.core.mount import MountState
from kernctl.core.runner import UpdateReport, UpdateRunner
from kernctl.core.selector import KernelSelectionError
from kernctl.utils.formatting import (
    console,
    print_detail,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Build and rotate boot images for the newest kernel.",
    invoke_without_command=True,
)


def _print_step(message: str) -> None:
    print_info(escape(message))


def _show_report(report: UpdateReport, quiet: bool) -> None:
    """Display the outcome of an update run.

    Args:
        report: Runner result.
        quiet: Show failures only.
    """
    if report.mount_state == MountState.FAILED:
        print_warning("Boot partition could not be mounted; continued with the current tree.")

    if not quiet:
        print_kernel(report.kernel.path, report.kernel.version)
        if report.retention:
            console.print(create_retention_table(report.retention))

    if report.retention and (not quiet or not all(r.success for r in report.retention)):
        print_retention_summary(report.retention)

    if report.menu_error is not None:
        print_error(f"Failed to write menu: {escape(report.menu_error)}")
    elif report.menu_path is not None and not quiet:
        print_success(f"Menu written to {escape(str(report.menu_path))}")


@app.callback(invoke_without_command=True)
def update(
    ctx: typer.Context,
    kernel: Annotated[
        Path | None,
        typer.Option(
            "--kernel",
            "-k",
            help="Install this kernel image instead of the newest one found.",
        ),
    ] = None,
    prune_only: Annotated[
        bool,
        typer.Option(
            "--prune-only",
            help="Skip building; only reconcile target directories and the menu.",
        ),
    ] = False,
) -> None:
    """Run the boot image lifecycle.

    Selects the newest kernel, builds its initramfs (and unified EFI image
    when enabled), places the builds in the configured target directories,
    prunes old builds and regenerates the bootloader menu.

    Examples:
        kernctl update                          # Install the newest kernel
        kernctl update --kernel ./vmlinuz-6.6.2 # Install a specific kernel
        kernctl update --prune-only             # Only rotate and rewrite the menu
    """
    obj = ctx.obj or {}
    quiet = bool(obj.get("quiet"))
    config = require_config(obj.get("config_path"))

    runner = UpdateRunner(
        config,
        kernel_override=kernel,
        prune_only=prune_only,
        on_step=None if quiet else _print_step,
    )

    try:
        report = runner.run()
    except KernelSelectionError as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e
    except BuildFailedError as e:
        print_error(escape(str(e)))
        if e.output:
            print_detail(e.output)
        raise typer.Exit(code=1) from e
    except (BuildError, RuntimeError, OSError) as e:
        print_error(escape(str(e)))
        raise typer.Exit(code=1) from e

    if report is None:
        if not quiet:
            print_info("Boot image management is disabled (manage = false).")
        return

    _show_report(report, quiet)

    if not report.success:
        raise typer.Exit(code=1)
