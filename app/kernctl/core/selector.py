"""Kernel selection.

Finds the kernel image a run installs: either the explicitly configured one,
or the highest-versioned image in the kernel search directory.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from kernctl.core.config import KernctlConfig
from kernctl.core.naming import SLOT_NAMES, is_efi_name, parse_artifact, split_name
from kernctl.core.version import version_key
from kernctl.models.artifact import ArtifactRole, KernelImage

logger = logging.getLogger(__name__)


class KernelSelectionError(Exception):
    """Base exception for kernel selection errors."""


class KernelNotFoundError(KernelSelectionError):
    """Raised when no kernel matches any of the configured prefixes."""


class KernelConfigurationError(KernelSelectionError):
    """Raised when an explicitly configured kernel cannot be used."""


def select_latest(directory: Path, prefixes: Sequence[str]) -> KernelImage | None:
    """Select the highest-versioned kernel in a directory.

    Prefixes are tried in order. Within a prefix, every file named
    ``<prefix>-<version>`` competes and the highest version wins; the first
    prefix with any match ends the search, so prefixes are never pooled.
    Slot names (``current``, ``backup``) are kernctl's own output, not
    versions, and never compete.

    Args:
        directory: Directory to search.
        prefixes: Kernel naming prefixes in priority order.

    Returns:
        The selected KernelImage, or None if nothing matched.
    """
    if not directory.is_dir():
        logger.debug("Kernel search directory %s does not exist", directory)
        return None

    entries = sorted(p for p in directory.iterdir() if p.is_file())

    for prefix in prefixes:
        candidates = [
            artifact
            for artifact in (parse_artifact(p, prefix) for p in entries)
            if artifact is not None
            and artifact.role == ArtifactRole.KERNEL
            and artifact.version not in SLOT_NAMES
        ]
        if not candidates:
            logger.debug("No %s-* kernels in %s", prefix, directory)
            continue

        newest = max(candidates, key=lambda a: version_key(a.version))
        logger.debug(
            "Selected %s out of %d %s-* candidate(s)",
            newest.name,
            len(candidates),
            prefix,
        )
        return KernelImage(path=newest.path, prefix=prefix, version=newest.version)

    return None


def kernel_from_path(path: Path) -> KernelImage:
    """Build a KernelImage for an explicitly given kernel file.

    Args:
        path: Kernel image file.

    Returns:
        KernelImage with prefix and version derived from the filename.

    Raises:
        KernelConfigurationError: If the file is missing or its name carries
            no version.
    """
    if not path.is_file():
        msg = f"Configured kernel does not exist: {path}"
        raise KernelConfigurationError(msg)

    parts = split_name(path.name)
    if parts is None or is_efi_name(path.name):
        msg = f"Cannot derive a kernel version from {path.name!r} (expected <prefix>-<version>)"
        raise KernelConfigurationError(msg)

    prefix, version = parts
    if version in SLOT_NAMES:
        msg = f"{path.name!r} is a rotation slot, not a versioned kernel"
        raise KernelConfigurationError(msg)
    return KernelImage(path=path, prefix=prefix, version=version)


def resolve_kernel(config: KernctlConfig, override: Path | None = None) -> KernelImage:
    """Resolve the kernel a run installs.

    An explicit kernel (command line override or ``kernel.path``) bypasses
    the search entirely.

    Args:
        config: Run configuration.
        override: Kernel path given on the command line, if any.

    Returns:
        The kernel to install.

    Raises:
        KernelConfigurationError: If an explicit kernel is unusable.
        KernelNotFoundError: If the search finds no kernel.
    """
    explicit = override or config.kernel.path
    if explicit is not None:
        kernel = kernel_from_path(explicit)
        logger.info("Using explicitly configured kernel %s", kernel.path)
        return kernel

    kernel = select_latest(config.kernel.search_dir, config.kernel.prefixes)
    if kernel is None:
        prefixes = ", ".join(f"{p}-*" for p in config.kernel.prefixes)
        msg = f"No kernel found in {config.kernel.search_dir} (looked for {prefixes})"
        raise KernelNotFoundError(msg)

    logger.info("Selected kernel %s", kernel.path)
    return kernel
