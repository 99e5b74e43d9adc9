"""Boot file naming conventions.

All knowledge about how kernels, initramfs images and EFI images are named
on disk lives here, so that the retention and menu logic only ever deal with
typed Artifact records.

Layout:
- kernel:     ``<prefix>-<version>``
- initramfs:  ``initramfs-<version>.img``
- EFI image:  ``<prefix>-<version>.EFI``

For single-slot rotation the version is replaced by a slot name
(``current`` or ``backup``).
"""

import logging
from pathlib import Path

from kernctl.core.version import version_key
from kernctl.models.artifact import Artifact, ArtifactRole

logger = logging.getLogger(__name__)

SEPARATOR = "-"
EFI_SUFFIX = ".EFI"
INITRAMFS_PREFIX = "initramfs"
INITRAMFS_SUFFIX = ".img"

CURRENT_SLOT = "current"
BACKUP_SLOT = "backup"
SLOT_NAMES = frozenset({CURRENT_SLOT, BACKUP_SLOT})


def split_name(name: str) -> tuple[str, str] | None:
    """Split a filename into prefix and version at the first separator.

    Args:
        name: Filename such as "vmlinuz-6.6.1".

    Returns:
        (prefix, version), or None if either part would be empty.
    """
    prefix, sep, version = name.partition(SEPARATOR)
    if not sep or not prefix or not version:
        return None
    return prefix, version


def is_efi_name(name: str) -> bool:
    """Check whether a filename carries the EFI image suffix (any case)."""
    return name.upper().endswith(EFI_SUFFIX)


def kernel_name(prefix: str, version: str) -> str:
    """Filename of a kernel image."""
    return f"{prefix}{SEPARATOR}{version}"


def initramfs_name(version: str) -> str:
    """Filename of the initramfs paired with a kernel version."""
    return f"{INITRAMFS_PREFIX}{SEPARATOR}{version}{INITRAMFS_SUFFIX}"


def efi_name(prefix: str, version: str) -> str:
    """Filename of a unified EFI image."""
    return f"{prefix}{SEPARATOR}{version}{EFI_SUFFIX}"


def paired_initramfs_name(kernel_filename: str, prefix: str) -> str:
    """Derive the initramfs filename belonging to a kernel filename.

    The kernel's naming prefix is substituted by the initramfs naming
    convention, e.g. ``vmlinuz-6.6.1`` -> ``initramfs-6.6.1.img``.

    Raises:
        ValueError: If the filename does not start with the given prefix.
    """
    head = f"{prefix}{SEPARATOR}"
    if not kernel_filename.startswith(head) or kernel_filename == head:
        msg = f"{kernel_filename!r} is not a {prefix!r} kernel"
        raise ValueError(msg)
    return initramfs_name(kernel_filename[len(head) :])


def parse_artifact(path: Path, prefix: str) -> Artifact | None:
    """Classify a file of a target directory.

    Args:
        path: File to classify.
        prefix: Naming prefix of the kernel being managed.

    Returns:
        An Artifact record, or None if the file does not follow any of the
        naming conventions for this prefix.
    """
    name = path.name
    head = f"{prefix}{SEPARATOR}"

    if name.startswith(head):
        rest = name[len(head) :]
        if is_efi_name(name):
            version = rest[: -len(EFI_SUFFIX)]
            role = ArtifactRole.EFI
        else:
            version = rest
            role = ArtifactRole.KERNEL
        if not version:
            return None
        return Artifact(path=path, prefix=prefix, version=version, role=role)

    initrd_head = f"{INITRAMFS_PREFIX}{SEPARATOR}"
    if name.startswith(initrd_head) and name.endswith(INITRAMFS_SUFFIX):
        version = name[len(initrd_head) : -len(INITRAMFS_SUFFIX)]
        if not version:
            return None
        return Artifact(
            path=path,
            prefix=INITRAMFS_PREFIX,
            version=version,
            role=ArtifactRole.INITRAMFS,
        )

    return None


def list_artifacts(directory: Path, prefix: str, role: ArtifactRole) -> list[Artifact]:
    """List the artifacts of one role in a directory, oldest version first.

    Only regular files (or symlinks to them) are considered. A missing
    directory yields an empty list.

    Args:
        directory: Directory to list.
        prefix: Naming prefix of the kernel being managed.
        role: Role to keep.

    Returns:
        Artifacts sorted ascending by version.
    """
    if not directory.is_dir():
        logger.debug("Directory %s does not exist, nothing to list", directory)
        return []

    found: list[Artifact] = []
    for entry in directory.iterdir():
        if not entry.is_file():
            continue
        artifact = parse_artifact(entry, prefix)
        if artifact is not None and artifact.role == role:
            found.append(artifact)

    found.sort(key=lambda a: version_key(a.version))
    return found
