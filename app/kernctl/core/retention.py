"""Retention of boot images in a target directory.

A RetentionManager reconciles one target directory for one rotation mode:
it places the artifacts of the current build and prunes old builds so that
the directory holds at most the configured number of builds afterwards.

Two policies are supported:

- Versioned: builds are stored under version-suffixed names and the oldest
  versions (by version order, not mtime) are removed first.
- Single slot with backup: the previous ``current`` build is copied to
  ``backup`` before the new build is copied to ``current``.

Placement always copies; a file is never moved out of its slot, so an
interrupted or failed copy leaves the previous build bootable.
"""

import logging
import os
import shutil
from collections.abc import Sequence
from pathlib import Path

from kernctl.core.naming import (
    BACKUP_SLOT,
    CURRENT_SLOT,
    SLOT_NAMES,
    efi_name,
    initramfs_name,
    kernel_name,
    list_artifacts,
    paired_initramfs_name,
)
from kernctl.core.paths import ensure_dir
from kernctl.core.version import version_key
from kernctl.models.artifact import Artifact, ArtifactRole, KernelImage
from kernctl.models.retention import (
    RetentionResult,
    RotationMode,
    RotationPolicy,
    SingleSlotPolicy,
    VersionedPolicy,
)

logger = logging.getLogger(__name__)

# Roles placed for one build of each mode.
MODE_ROLES: dict[RotationMode, tuple[ArtifactRole, ...]] = {
    RotationMode.EFI: (ArtifactRole.EFI,),
    RotationMode.COMPONENTS: (ArtifactRole.INITRAMFS, ArtifactRole.KERNEL),
}

# Role whose files stand for one retained build of a mode.
PRIMARY_ROLE: dict[RotationMode, ArtifactRole] = {
    RotationMode.EFI: ArtifactRole.EFI,
    RotationMode.COMPONENTS: ArtifactRole.KERNEL,
}


class RetentionError(Exception):
    """Base exception for retention errors."""


class CopyFailedError(RetentionError):
    """Raised when an artifact cannot be copied into a target directory."""


def _staging_path(dest: Path) -> Path:
    return dest.with_name(f".{dest.name}.tmp")


def _saved_path(dest: Path) -> Path:
    return dest.with_name(f".{dest.name}.old")


def _discard(paths: Sequence[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Could not remove temporary file %s", path)


def _commit(staged: Sequence[tuple[Path, Path]]) -> None:
    """Rename staged files over their destinations, undoing all on failure.

    A destination that already exists is first moved aside, so that a failed
    rename further down the group can put every earlier destination back.

    Raises:
        OSError: If a rename fails; earlier destinations are restored.
    """
    done: list[tuple[Path, Path | None]] = []
    try:
        for tmp, dest in staged:
            saved: Path | None = None
            if dest.exists():
                saved = _saved_path(dest)
                os.replace(dest, saved)
            done.append((dest, saved))
            os.replace(tmp, dest)
    except OSError:
        for dest, saved in reversed(done):
            try:
                if saved is not None:
                    os.replace(saved, dest)
                else:
                    dest.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not restore %s: %s", dest, e)
        raise
    _discard([saved for _, saved in done if saved is not None])


def place_files(pairs: Sequence[tuple[Path, Path]]) -> list[Path]:
    """Copy a group of files into place, all or nothing.

    Every source is first copied to a hidden temporary sibling of its
    destination. Only when all copies succeeded are the temporaries renamed
    over their destinations, so a kernel never lands without its initramfs
    and readers never see a partial file. If a copy fails the previous
    destinations are untouched; if a rename fails the destinations already
    replaced are restored.

    Args:
        pairs: (source, destination) pairs.

    Returns:
        The destination paths, in input order.

    Raises:
        CopyFailedError: If any copy or rename fails.
    """
    staged: list[tuple[Path, Path]] = []
    try:
        for src, dest in pairs:
            tmp = _staging_path(dest)
            staged.append((tmp, dest))
            try:
                shutil.copyfile(src, tmp)
            except OSError as e:
                msg = f"Cannot copy {src} to {dest}: {e.strerror or e}"
                raise CopyFailedError(msg) from e
        try:
            _commit(staged)
        except OSError as e:
            names = ", ".join(str(dest) for _, dest in staged)
            msg = f"Cannot move {names} into place: {e.strerror or e}"
            raise CopyFailedError(msg) from e
    except CopyFailedError:
        _discard([tmp for tmp, _ in staged])
        raise
    return [dest for _, dest in staged]


def place_file(src: Path, dest: Path) -> Path:
    """Copy a single file into place; see place_files()."""
    return place_files([(src, dest)])[0]


def slot_filename(mode: RotationMode, role: ArtifactRole, prefix: str, version: str) -> str:
    """Filename of an artifact of the given role, for a version or slot name."""
    if role == ArtifactRole.EFI:
        return efi_name(prefix, version)
    if role == ArtifactRole.INITRAMFS:
        return initramfs_name(version)
    if mode == RotationMode.EFI:
        msg = f"{mode.value} mode does not store {role.value} files"
        raise ValueError(msg)
    return kernel_name(prefix, version)


def plan_prune(
    existing: Sequence[Artifact],
    max_copies: int,
    incoming: int = 0,
) -> list[Artifact]:
    """Decide which existing builds must be removed.

    The existing builds are ordered oldest first by version and removed one
    at a time until, together with the ``incoming`` builds placed by this
    run, no more than ``max_copies`` remain. Incoming builds are never
    candidates.

    Args:
        existing: Builds already in the directory (excluding incoming ones).
        max_copies: Maximum number of builds to retain.
        incoming: Number of builds placed by this run.

    Returns:
        Builds to remove, oldest first.
    """
    ordered = sorted(existing, key=lambda a: version_key(a.version))
    excess = len(ordered) + incoming - max_copies
    if excess <= 0:
        return []
    return ordered[:excess]


def list_retained(
    target_dir: Path,
    prefix: str,
    mode: RotationMode,
    policy: RotationPolicy | None = None,
) -> list[Artifact]:
    """List the builds retained for a mode, oldest first.

    Files left behind by the other policy are not retained builds: a
    versioned directory ignores ``current``/``backup`` slots and a single
    slot directory ignores version-suffixed files.

    Args:
        target_dir: Directory to inspect.
        prefix: Kernel naming prefix.
        mode: Rotation mode; EFI lists EFI images, COMPONENTS lists kernels.
        policy: Rotation policy of the directory; None lists every build.

    Returns:
        One Artifact per retained build.
    """
    artifacts = list_artifacts(target_dir, prefix, PRIMARY_ROLE[mode])
    if isinstance(policy, VersionedPolicy):
        return [a for a in artifacts if a.version not in SLOT_NAMES]
    if isinstance(policy, SingleSlotPolicy):
        return [a for a in artifacts if a.version in SLOT_NAMES]
    return artifacts


class RetentionManager:
    """Reconciles one target directory for one rotation mode.

    Attributes:
        mode: Rotation mode handled by this manager.
        target_dir: Directory holding the retained builds.
        policy: Rotation policy applied on reconciliation.
    """

    def __init__(self, mode: RotationMode, target_dir: Path, policy: RotationPolicy) -> None:
        """Initialize the RetentionManager.

        Args:
            mode: Rotation mode handled by this manager.
            target_dir: Directory holding the retained builds.
            policy: Rotation policy applied on reconciliation.
        """
        self.mode = mode
        self.target_dir = target_dir
        self.policy = policy

    @property
    def roles(self) -> tuple[ArtifactRole, ...]:
        """Roles of the files placed for one build."""
        return MODE_ROLES[self.mode]

    def reconcile(
        self,
        kernel: KernelImage,
        sources: dict[ArtifactRole, Path] | None = None,
    ) -> RetentionResult:
        """Place the new build and prune old ones.

        Args:
            kernel: Kernel of the current build; its prefix scopes the
                directory listing and its version names the new files.
            sources: Files of the new build keyed by role. Empty or None
                reconciles the directory without placing anything.

        Returns:
            RetentionResult describing placed and removed files and errors.

        Raises:
            ValueError: If sources are given but incomplete for this mode.
        """
        sources = sources or {}
        missing = [role.value for role in self.roles if role not in sources]
        if sources and missing:
            msg = f"{self.mode.value} build is missing {', '.join(missing)}"
            raise ValueError(msg)

        try:
            ensure_dir(self.target_dir, f"{self.mode.value} image")
        except RuntimeError as e:
            logger.warning("%s", e)
            return self._result(errors=[str(e)])

        if isinstance(self.policy, VersionedPolicy):
            return self._reconcile_versioned(kernel, sources, self.policy.max_copies)
        if isinstance(self.policy, SingleSlotPolicy):
            return self._reconcile_single_slot(kernel, sources)
        msg = f"Unsupported rotation policy: {self.policy!r}"
        raise TypeError(msg)

    def retained(self, prefix: str) -> list[Artifact]:
        """List the builds currently retained for a prefix, oldest first."""
        return list_retained(self.target_dir, prefix, self.mode, self.policy)

    def _dest(self, role: ArtifactRole, prefix: str, version: str) -> Path:
        return self.target_dir / slot_filename(self.mode, role, prefix, version)

    def _result(
        self,
        placed: Sequence[Path] = (),
        removed: Sequence[Path] = (),
        errors: Sequence[str] = (),
    ) -> RetentionResult:
        return RetentionResult(
            mode=self.mode,
            target_dir=self.target_dir,
            placed=tuple(placed),
            removed=tuple(removed),
            errors=tuple(errors),
        )

    # === Versioned rotation ===

    def _reconcile_versioned(
        self,
        kernel: KernelImage,
        sources: dict[ArtifactRole, Path],
        max_copies: int,
    ) -> RetentionResult:
        """Copy the build under versioned names, then prune the oldest."""
        # The version being written is overwritten, never pruned.
        existing = [
            artifact
            for artifact in self.retained(kernel.prefix)
            if not (sources and artifact.version == kernel.version)
        ]

        placed: list[Path] = []
        if sources:
            pairs = [
                (sources[role], self._dest(role, kernel.prefix, kernel.version))
                for role in self.roles
            ]
            try:
                placed = place_files(pairs)
            except CopyFailedError as e:
                # Nothing landed, so nothing may be pruned.
                logger.warning("%s", e)
                return self._result(errors=[str(e)])
            for path in placed:
                logger.info("Placed %s", path)

        removed: list[Path] = []
        errors: list[str] = []
        for artifact in plan_prune(existing, max_copies, incoming=1 if sources else 0):
            for path in self._files_of(artifact):
                try:
                    path.unlink()
                except FileNotFoundError:
                    logger.debug("%s already absent", path)
                    continue
                except OSError as e:
                    msg = f"Cannot remove {path}: {e.strerror or e}"
                    logger.warning("%s", msg)
                    errors.append(msg)
                    continue
                removed.append(path)
                logger.info("Removed %s", path)

        return self._result(placed=placed, removed=removed, errors=errors)

    def _files_of(self, artifact: Artifact) -> list[Path]:
        """All files belonging to one retained build, kernel first."""
        if self.mode == RotationMode.COMPONENTS:
            paired = paired_initramfs_name(artifact.name, artifact.prefix)
            return [artifact.path, artifact.path.with_name(paired)]
        return [artifact.path]

    # === Single slot rotation ===

    def _reconcile_single_slot(
        self,
        kernel: KernelImage,
        sources: dict[ArtifactRole, Path],
    ) -> RetentionResult:
        """Copy current to backup, then copy the new build to current."""
        if not sources:
            logger.debug("Nothing to rotate in %s", self.target_dir)
            return self._result()

        placed: list[Path] = []
        errors: list[str] = []

        backups = [
            (
                self._dest(role, kernel.prefix, CURRENT_SLOT),
                self._dest(role, kernel.prefix, BACKUP_SLOT),
            )
            for role in self.roles
        ]
        missing = [current.name for current, _ in backups if not current.is_file()]
        if missing and len(missing) < len(backups):
            # The existing backup stays a complete pair instead.
            logger.warning(
                "Previous build in %s is incomplete (missing %s), not backed up",
                self.target_dir,
                ", ".join(missing),
            )
        elif not missing:
            try:
                placed += place_files(backups)
                logger.info("Backed up previous build in %s", self.target_dir)
            except CopyFailedError as e:
                # The primary placement is still attempted.
                logger.warning("%s", e)
                errors.append(f"Backup failed: {e}")

        pairs = [
            (sources[role], self._dest(role, kernel.prefix, CURRENT_SLOT)) for role in self.roles
        ]
        try:
            current = place_files(pairs)
        except CopyFailedError as e:
            logger.warning("%s", e)
            errors.append(str(e))
        else:
            placed += current
            for path in current:
                logger.info("Placed %s", path)

        return self._result(placed=placed, errors=errors)
