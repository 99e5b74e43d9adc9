"""kernctl - boot image lifecycle manager.

Selects a kernel, builds its initramfs and optional unified EFI image,
rotates previous builds on the boot partition and regenerates the
bootloader menu.
"""

__version__ = "0.4.0"
