"""Artifact models for kernels, build outputs and retained boot files.

This module defines the immutable records passed between kernel selection,
artifact building, retention and menu generation.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ArtifactKind(str, Enum):
    """Kind of artifact produced by a build.

    Attributes:
        INITRAMFS: Initramfs image generated for a kernel version.
        UNIFIED_EFI: Single EFI executable embedding kernel, initramfs and cmdline.
    """

    INITRAMFS = "initramfs"
    UNIFIED_EFI = "unified_efi"


class ArtifactRole(str, Enum):
    """Role of a file found in (or destined for) a target directory.

    Attributes:
        KERNEL: Kernel image, named ``<prefix>-<version>``.
        INITRAMFS: Initramfs paired with a kernel, named ``initramfs-<version>.img``.
        EFI: Unified EFI image, named ``<prefix>-<version>.EFI``.
    """

    KERNEL = "kernel"
    INITRAMFS = "initramfs"
    EFI = "efi"


@dataclass(frozen=True, slots=True)
class KernelImage:
    """A kernel image selected as the input of a run.

    Attributes:
        path: Location of the kernel image.
        prefix: Naming prefix (filename before the first '-').
        version: Kernel version (filename after the first '-').
    """

    path: Path
    prefix: str
    version: str

    def __post_init__(self) -> None:
        """Validate kernel image data after initialization."""
        if not self.prefix:
            msg = f"Kernel prefix cannot be empty: {self.path}"
            raise ValueError(msg)
        if not self.version:
            msg = f"Kernel version cannot be empty: {self.path}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    """An artifact produced into the scratch area.

    Attributes:
        kind: What the artifact is.
        path: Location inside the scratch area.
    """

    kind: ArtifactKind
    path: Path


@dataclass(frozen=True, slots=True)
class Artifact:
    """A file in a target directory, parsed from its name.

    Attributes:
        path: Full path of the file.
        prefix: Naming prefix of the kernel the file belongs to.
        version: Version (or slot name) encoded in the filename.
        role: What the file is.
    """

    path: Path
    prefix: str
    version: str
    role: ArtifactRole

    @property
    def name(self) -> str:
        """Filename of the artifact."""
        return self.path.name
