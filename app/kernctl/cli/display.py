"""Shared Rich display functions for retention results and retained builds.

Provides the table builders used by the update and list commands.
"""

from pathlib import Path

from rich.markup import escape
from rich.table import Table

from kernctl.models.artifact import Artifact
from kernctl.models.retention import RetentionResult, RotationMode
from kernctl.utils.formatting import console, print_success, print_warning


def create_retention_table(results: list[RetentionResult] | tuple[RetentionResult, ...]) -> Table:
    """Create a Rich table of the files placed and removed per rotation mode.

    Args:
        results: One result per reconciled rotation mode.

    Returns:
        Rich Table with one row per file or error.
    """
    table = Table(
        title="Retention",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Mode", width=10)
    table.add_column("Status", width=8, justify="center")
    table.add_column("File")

    for result in results:
        mode = result.mode.value
        for path in result.placed:
            table.add_row(mode, "[placed]placed[/]", escape(str(path)))
        for path in result.removed:
            table.add_row(mode, "[removed]removed[/]", f"[muted]{escape(str(path))}[/]")
        for error in result.errors:
            table.add_row(mode, "[error]FAIL[/]", escape(error))
        if result.success and not (result.placed or result.removed):
            unchanged = f"[muted]{escape(str(result.target_dir))} unchanged[/]"
            table.add_row(mode, "[kept]ok[/]", unchanged)

    return table


def create_retained_table(
    mode: RotationMode,
    target_dir: Path,
    retained: list[Artifact],
    newest: str | None = None,
) -> Table:
    """Create a Rich table of the builds retained in a target directory.

    Args:
        mode: Rotation mode of the directory.
        target_dir: Directory that was listed.
        retained: Retained builds, oldest first.
        newest: Version to highlight as the menu default.

    Returns:
        Rich Table listing the builds newest first.
    """
    table = Table(
        title=escape(f"{mode.value} ({target_dir})"),
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Version", no_wrap=True)
    table.add_column("File")

    for artifact in reversed(retained):
        style = "version_default" if artifact.version == newest else "version_other"
        table.add_row(f"[{style}]{escape(artifact.version)}[/]", escape(artifact.name))

    return table


def print_retention_summary(results: list[RetentionResult] | tuple[RetentionResult, ...]) -> None:
    """Print a one-line summary of the reconciliation.

    Args:
        results: One result per reconciled rotation mode.
    """
    failed = [r for r in results if not r.success]
    placed = sum(len(r.placed) for r in results)
    removed = sum(len(r.removed) for r in results)

    if failed:
        modes = ", ".join(r.mode.value for r in failed)
        print_warning(f"Reconciliation failed for: {modes}")
    else:
        print_success(f"Placed {placed} file(s), removed {removed} file(s).")


def print_kernel(path: Path, version: str) -> None:
    """Print the kernel selected for the run."""
    console.print(f"Kernel: [bold]{escape(str(path))}[/bold] [muted](version {escape(version)})[/]")
