"""Bootloader menu generation.

The menu is regenerated in full from the kernels retained in the components
directory after reconciliation; it is never patched incrementally. The
output uses syslinux/extlinux syntax:

    MENU TITLE Boot Menu
    TIMEOUT 50
    DEFAULT vmlinuz-6.6.2

    LABEL vmlinuz-6.6.2
        MENU LABEL Linux 6.6.2
        LINUX /vmlinuz-6.6.2
        INITRD /initramfs-6.6.2.img
        APPEND root=/dev/sda2 rw
"""

import logging
from pathlib import Path, PurePosixPath

from kernctl.core.naming import paired_initramfs_name
from kernctl.core.retention import list_retained, place_file
from kernctl.models.menu import MenuEntry
from kernctl.models.retention import RotationMode, RotationPolicy

logger = logging.getLogger(__name__)

MENU_INDENT = "    "


def boot_relative(path: Path, mount_point: Path) -> str:
    """Express a path relative to the root of the boot partition.

    The bootloader sees the partition mounted at ``mount_point`` as its own
    root, so that prefix is stripped and the result is rooted at '/'.
    Paths outside the mount point are returned unchanged.

    Args:
        path: Absolute path on the running system.
        mount_point: Boot partition mount point.

    Returns:
        POSIX path string starting with '/'.
    """
    try:
        relative = path.relative_to(mount_point)
    except ValueError:
        return PurePosixPath(path).as_posix()
    return "/" + PurePosixPath(relative).as_posix() if relative.parts else "/"


def build_entries(
    target_dir: Path,
    prefix: str,
    mount_point: Path,
    cmdline: str,
    policy: RotationPolicy | None = None,
) -> list[MenuEntry]:
    """Build one menu entry per retained kernel, newest first.

    Args:
        target_dir: Components directory after reconciliation.
        prefix: Kernel naming prefix.
        mount_point: Boot partition mount point, stripped from paths.
        cmdline: Kernel command line for every entry.
        policy: Rotation policy of the directory; files left behind by the
            other policy get no entry.

    Returns:
        Menu entries in descending version order; the first is the default.
    """
    kernels = list_retained(target_dir, prefix, RotationMode.COMPONENTS, policy)

    entries: list[MenuEntry] = []
    for index, kernel in enumerate(reversed(kernels)):
        initrd = kernel.path.with_name(paired_initramfs_name(kernel.name, prefix))
        entries.append(
            MenuEntry(
                label=kernel.name,
                menu_label=f"Linux {kernel.version}",
                kernel_path=boot_relative(kernel.path, mount_point),
                initrd_path=boot_relative(initrd, mount_point),
                append=cmdline,
                default=index == 0,
            )
        )
    return entries


def render_menu(entries: list[MenuEntry], *, title: str = "Boot Menu", timeout: int = 50) -> str:
    """Render menu entries as bootloader configuration text.

    Args:
        entries: Entries in display order.
        title: Menu title.
        timeout: Timeout in tenths of a second.

    Returns:
        Complete menu file content, ending with a newline.
    """
    header = [f"MENU TITLE {title}", f"TIMEOUT {timeout}"]
    default = next((e for e in entries if e.default), None)
    if default is not None:
        header.append(f"DEFAULT {default.label}")

    blocks = ["\n".join(header)]
    for entry in entries:
        lines = [
            f"LABEL {entry.label}",
            f"{MENU_INDENT}MENU LABEL {entry.menu_label}",
            f"{MENU_INDENT}LINUX {entry.kernel_path}",
            f"{MENU_INDENT}INITRD {entry.initrd_path}",
        ]
        if entry.append:
            lines.append(f"{MENU_INDENT}APPEND {entry.append}")
        blocks.append("\n".join(lines))

    return "\n\n".join(blocks) + "\n"


def generate(
    target_dir: Path,
    prefix: str,
    mount_point: Path,
    cmdline: str,
    *,
    title: str = "Boot Menu",
    timeout: int = 50,
    policy: RotationPolicy | None = None,
) -> str:
    """Generate the menu text for the kernels retained in a directory.

    Args:
        target_dir: Components directory after reconciliation.
        prefix: Kernel naming prefix.
        mount_point: Boot partition mount point, stripped from paths.
        cmdline: Kernel command line.
        title: Menu title.
        timeout: Timeout in tenths of a second.
        policy: Rotation policy of the directory.

    Returns:
        Menu file content.
    """
    entries = build_entries(target_dir, prefix, mount_point, cmdline, policy)
    logger.debug("Generated %d menu entries from %s", len(entries), target_dir)
    return render_menu(entries, title=title, timeout=timeout)


def write_menu(text: str, scratch_dir: Path, dest: Path) -> Path:
    """Write the menu to the scratch area, then place it at its final path.

    Args:
        text: Menu content.
        scratch_dir: Scratch area of the current run.
        dest: Final menu location; parent directories are created.

    Returns:
        The final menu path.

    Raises:
        CopyFailedError: If the menu cannot be placed.
        OSError: If the scratch file cannot be written.
    """
    staged = scratch_dir / dest.name
    staged.write_text(text)
    dest.parent.mkdir(parents=True, exist_ok=True)
    place_file(staged, dest)
    logger.info("Wrote menu %s", dest)
    return dest
