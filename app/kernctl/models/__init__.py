"""Data models for kernctl.

This module exports the core data structures used throughout the application.
"""

from kernctl.models.artifact import (
    Artifact,
    ArtifactKind,
    ArtifactRole,
    BuildArtifact,
    KernelImage,
)
from kernctl.models.menu import MenuEntry
from kernctl.models.retention import (
    RetentionResult,
    RotationMode,
    RotationPolicy,
    SingleSlotPolicy,
    VersionedPolicy,
)

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactRole",
    "BuildArtifact",
    "KernelImage",
    "MenuEntry",
    "RetentionResult",
    "RotationMode",
    "RotationPolicy",
    "SingleSlotPolicy",
    "VersionedPolicy",
]
