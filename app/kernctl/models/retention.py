"""Retention policy and result models.

Defines how previous builds are rotated in a target directory and how the
outcome of one reconciliation is reported.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class RotationMode(str, Enum):
    """Which set of boot files a reconciliation manages.

    Attributes:
        EFI: Unified EFI images.
        COMPONENTS: Split kernel and initramfs pairs.
    """

    EFI = "efi"
    COMPONENTS = "components"


@dataclass(frozen=True, slots=True)
class VersionedPolicy:
    """Keep up to ``max_copies`` version-suffixed builds, pruning the oldest.

    Attributes:
        max_copies: Maximum number of retained builds (at least 1).
    """

    max_copies: int

    def __post_init__(self) -> None:
        """Validate the copy count."""
        if self.max_copies < 1:
            msg = f"max_copies must be at least 1, got {self.max_copies}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class SingleSlotPolicy:
    """Keep exactly a ``current`` and a ``backup`` slot."""


RotationPolicy = VersionedPolicy | SingleSlotPolicy


@dataclass(frozen=True, slots=True)
class RetentionResult:
    """Outcome of reconciling one target directory.

    Attributes:
        mode: Rotation mode that was reconciled.
        target_dir: Directory that was reconciled.
        placed: Paths written by this reconciliation.
        removed: Paths deleted while pruning.
        errors: Human-readable failures (copy failures, removal failures).
    """

    mode: RotationMode
    target_dir: Path
    placed: tuple[Path, ...] = ()
    removed: tuple[Path, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        """Check if the reconciliation completed without errors."""
        return not self.errors
