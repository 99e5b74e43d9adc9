"""List command implementation.

Shows the builds currently retained in each enabled target directory.
"""

import typer
from rich.markup import escape

from kernctl.cli.display import create_retained_table
from kernctl.core.config import KernctlConfig, RotationConfig, require_config
from kernctl.core.naming import split_name
from kernctl.core.retention import list_retained
from kernctl.core.version import latest
from kernctl.models.retention import RotationMode
from kernctl.utils.formatting import console, print_info

app = typer.Typer(
    help="List retained boot images.",
    invoke_without_command=True,
)


def _managed_prefixes(config: KernctlConfig) -> list[str]:
    """Kernel prefixes whose builds may be present in the target directories."""
    prefixes = list(config.kernel.prefixes)
    if config.kernel.path is not None:
        parts = split_name(config.kernel.path.name)
        if parts is not None and parts[0] not in prefixes:
            prefixes.insert(0, parts[0])
    return prefixes


def _enabled_modes(config: KernctlConfig) -> list[tuple[RotationMode, RotationConfig]]:
    modes: list[tuple[RotationMode, RotationConfig]] = []
    if config.efi.enabled:
        modes.append((RotationMode.EFI, config.efi))
    if config.components.enabled:
        modes.append((RotationMode.COMPONENTS, config.components))
    return modes


@app.callback(invoke_without_command=True)
def list_builds(ctx: typer.Context) -> None:
    """Show the retained builds per enabled rotation mode, newest first."""
    obj = ctx.obj or {}
    config = require_config(obj.get("config_path"))

    modes = _enabled_modes(config)
    if not modes:
        print_info("No rotation mode is enabled.")
        return

    for mode, section in modes:
        shown = False
        for prefix in _managed_prefixes(config):
            retained = list_retained(section.image_dir, prefix, mode, section.policy)
            if not retained:
                continue
            newest = latest(a.version for a in retained)
            console.print(create_retained_table(mode, section.image_dir, retained, newest))
            shown = True
        if not shown:
            print_info(escape(f"No {mode.value} builds retained in {section.image_dir}"))
