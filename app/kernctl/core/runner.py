"""Update orchestration.

Runs one complete boot image update: scratch area and mount setup, kernel
selection, artifact building, reconciliation of each enabled rotation mode
and menu regeneration. Selection and build failures abort the run; retention
and menu failures are confined to their step and reported in the result.
"""

import logging
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory

from kernctl.core import menu
from kernctl.core.builder import ArtifactBuilder, MissingPreconditionError
from kernctl.core.config import KernctlConfig, RotationConfig
from kernctl.core.mount import DEFAULT_MOUNTS_FILE, MountGuard, MountState
from kernctl.core.paths import ensure_dir
from kernctl.core.retention import CopyFailedError, RetentionManager
from kernctl.core.selector import resolve_kernel
from kernctl.models.artifact import ArtifactKind, ArtifactRole, BuildArtifact, KernelImage
from kernctl.models.retention import RetentionResult, RotationMode

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "kernctl-"


@dataclass(frozen=True, slots=True)
class UpdateReport:
    """Outcome of one update run.

    Attributes:
        kernel: Kernel the run installed.
        mount_state: Result of mounting the boot partition.
        artifacts: Artifacts built in the scratch area (empty for prune-only).
        retention: One result per reconciled rotation mode.
        menu_path: Location of the regenerated menu, if one was written.
        menu_error: Why the menu could not be written, if it failed.
    """

    kernel: KernelImage
    mount_state: MountState
    artifacts: tuple[BuildArtifact, ...] = ()
    retention: tuple[RetentionResult, ...] = ()
    menu_path: Path | None = None
    menu_error: str | None = None

    @property
    def success(self) -> bool:
        """Check if every reconciliation and the menu succeeded."""
        return all(r.success for r in self.retention) and self.menu_error is None

    def artifact(self, kind: ArtifactKind) -> BuildArtifact | None:
        """Return the built artifact of a kind, if any."""
        return next((a for a in self.artifacts if a.kind == kind), None)


class UpdateRunner:
    """Runs the boot image lifecycle once for a configuration.

    Attributes:
        config: Immutable run configuration.
    """

    def __init__(
        self,
        config: KernctlConfig,
        *,
        kernel_override: Path | None = None,
        prune_only: bool = False,
        mounts_file: Path = DEFAULT_MOUNTS_FILE,
        on_step: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Run configuration.
            kernel_override: Explicit kernel that bypasses selection.
            prune_only: Skip building; only reconcile and regenerate the menu.
            mounts_file: Mount table used to detect an existing boot mount.
            on_step: Called with a short description before each step.
        """
        self.config = config
        self._kernel_override = kernel_override
        self._prune_only = prune_only
        self._mounts_file = mounts_file
        self._on_step = on_step

    def run(self) -> UpdateReport | None:
        """Run the update.

        The scratch area is removed and the boot partition released on every
        exit path, including SIGINT/SIGTERM.

        Returns:
            The UpdateReport, or None when management is disabled.

        Raises:
            KernelSelectionError: If no usable kernel is found.
            BuildError: If a precondition is missing or a build tool fails.
            RuntimeError: If the scratch base directory cannot be created.
        """
        if not self.config.manage:
            logger.info("Boot image management is disabled, nothing to do")
            return None

        scratch_base = ensure_dir(self.config.scratch.base_dir, "scratch")
        guard = MountGuard(self.config.mount_point, mounts_file=self._mounts_file)
        guard.install_signal_handlers()
        try:
            with ExitStack() as stack:
                scratch = Path(
                    stack.enter_context(TemporaryDirectory(prefix=SCRATCH_PREFIX, dir=scratch_base))
                )
                logger.debug("Scratch area %s", scratch)
                self._step(f"Mounting {self.config.mount_point}")
                mount_state = guard.acquire()
                stack.callback(guard.release)
                return self._run(scratch, mount_state)
        finally:
            guard.restore_signal_handlers()

    def _step(self, message: str) -> None:
        logger.debug("%s", message)
        if self._on_step is not None:
            self._on_step(message)

    def _run(self, scratch: Path, mount_state: MountState) -> UpdateReport:
        config = self.config

        kernel = resolve_kernel(config, self._kernel_override)
        self._step(f"Selected kernel {kernel.path} (version {kernel.version})")

        artifacts: list[BuildArtifact] = []
        if not self._prune_only:
            artifacts = self._build(scratch, kernel)

        built = {a.kind: a.path for a in artifacts}
        retention: list[RetentionResult] = []

        if config.efi.enabled:
            sources = {}
            if ArtifactKind.UNIFIED_EFI in built:
                sources = {ArtifactRole.EFI: built[ArtifactKind.UNIFIED_EFI]}
            retention.append(self._reconcile(RotationMode.EFI, config.efi, kernel, sources))

        if config.components.enabled:
            sources = {}
            if ArtifactKind.INITRAMFS in built:
                sources = {
                    ArtifactRole.INITRAMFS: built[ArtifactKind.INITRAMFS],
                    ArtifactRole.KERNEL: kernel.path,
                }
            retention.append(
                self._reconcile(RotationMode.COMPONENTS, config.components, kernel, sources)
            )

        menu_path: Path | None = None
        menu_error: str | None = None
        if config.menu.enabled and config.components.enabled:
            menu_path, menu_error = self._write_menu(scratch, kernel)

        return UpdateReport(
            kernel=kernel,
            mount_state=mount_state,
            artifacts=tuple(artifacts),
            retention=tuple(retention),
            menu_path=menu_path,
            menu_error=menu_error,
        )

    def _build(self, scratch: Path, kernel: KernelImage) -> list[BuildArtifact]:
        config = self.config
        if not (config.efi.enabled or config.components.enabled):
            logger.info("No rotation mode enabled, skipping build")
            return []

        # Checked after mounting, since the stub may live on the boot partition.
        if config.efi.enabled and not config.efi.stub.is_file():
            msg = f"EFI stub not found: {config.efi.stub}"
            raise MissingPreconditionError(msg)

        builder = ArtifactBuilder(
            scratch,
            initramfs_tool=config.initramfs.tool,
            embed_tool=config.efi.tool,
        )

        self._step(f"Building initramfs for {kernel.version}")
        initramfs = builder.build_initramfs(kernel.version, config.initramfs.conf_dir)
        artifacts = [initramfs]

        if config.efi.enabled:
            self._step(f"Building unified EFI image for {kernel.version}")
            artifacts.append(
                builder.build_unified_efi(
                    kernel,
                    initramfs.path,
                    config.cmdline,
                    config.efi.stub,
                    config.efi.os_release,
                )
            )

        return artifacts

    def _reconcile(
        self,
        mode: RotationMode,
        section: RotationConfig,
        kernel: KernelImage,
        sources: dict[ArtifactRole, Path],
    ) -> RetentionResult:
        self._step(f"Reconciling {mode.value} images in {section.image_dir}")
        manager = RetentionManager(mode, section.image_dir, section.policy)
        return manager.reconcile(kernel, sources)

    def _write_menu(self, scratch: Path, kernel: KernelImage) -> tuple[Path | None, str | None]:
        config = self.config
        entries = menu.build_entries(
            config.components.image_dir,
            kernel.prefix,
            config.mount_point,
            config.cmdline,
            config.components.policy,
        )
        if not entries:
            logger.warning(
                "No kernels retained in %s, menu left unchanged", config.components.image_dir
            )
            return None, None

        self._step(f"Writing menu {config.menu.path} ({len(entries)} entries)")
        text = menu.render_menu(entries, title=config.menu.title, timeout=config.menu.timeout)
        try:
            return menu.write_menu(text, scratch, config.menu.path), None
        except (CopyFailedError, OSError) as e:
            logger.warning("Cannot write menu %s: %s", config.menu.path, e)
            return None, str(e)
