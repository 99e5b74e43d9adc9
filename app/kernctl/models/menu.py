"""Bootloader menu entry model."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MenuEntry:
    """One selectable entry of the generated bootloader menu.

    Attributes:
        label: Internal label, unique within the menu.
        menu_label: Title shown to the user.
        kernel_path: Kernel path relative to the bootloader root.
        initrd_path: Initramfs path relative to the bootloader root.
        append: Kernel command line.
        default: Whether this entry is the default selection.
    """

    label: str
    menu_label: str
    kernel_path: str
    initrd_path: str
    append: str
    default: bool = False
