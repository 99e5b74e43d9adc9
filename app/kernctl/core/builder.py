"""Artifact building.

Runs the external initramfs generator and the EFI section embedder against
the scratch area. Both tools are invoked synchronously; a failure is fatal to
the run and is never retried.
"""

import logging
import subprocess
from pathlib import Path

from kernctl.core.naming import efi_name, initramfs_name
from kernctl.models.artifact import ArtifactKind, BuildArtifact, KernelImage
from kernctl.utils.shell import CommandResult, command_exists, run_command

logger = logging.getLogger(__name__)

# Section name and load address of each blob embedded into the EFI stub, in
# the order the embedder receives them. The addresses match the layout the
# stub expects; changing them yields an image that does not boot.
OSREL_SECTION = (".osrel", "0x20000")
CMDLINE_SECTION = (".cmdline", "0x30000")
LINUX_SECTION = (".linux", "0x2000000")
INITRD_SECTION = (".initrd", "0x3000000")

CMDLINE_FILENAME = "cmdline.txt"


class BuildError(Exception):
    """Base exception for artifact build errors."""


class MissingPreconditionError(BuildError):
    """Raised when a required input or tool is absent before building."""


class BuildFailedError(BuildError):
    """Raised when a build tool exits with a non-zero status.

    Attributes:
        command: The command that failed.
        returncode: Exit status of the tool.
        output: Captured stdout and stderr of the tool.
    """

    def __init__(self, message: str, command: list[str], returncode: int, output: str) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.output = output


class ArtifactBuilder:
    """Builds initramfs and unified EFI images into a scratch directory.

    Attributes:
        scratch_dir: Directory build outputs are written to.
    """

    def __init__(
        self,
        scratch_dir: Path,
        *,
        initramfs_tool: str = "dracut",
        embed_tool: str = "objcopy",
        timeout: float | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            scratch_dir: Existing directory for build outputs.
            initramfs_tool: Initramfs generator executable.
            embed_tool: Section embedding executable.
            timeout: Per-tool timeout in seconds; None waits indefinitely.
        """
        self.scratch_dir = scratch_dir
        self._initramfs_tool = initramfs_tool
        self._embed_tool = embed_tool
        self._timeout = timeout

    def build_initramfs(self, kernel_version: str, conf_dir: Path) -> BuildArtifact:
        """Generate the initramfs for a kernel version.

        Args:
            kernel_version: Version the initramfs is generated for.
            conf_dir: Configuration directory of the generator.

        Returns:
            The initramfs artifact in the scratch area.

        Raises:
            MissingPreconditionError: If the generator is not installed.
            BuildFailedError: If the generator exits non-zero.
        """
        output = self.scratch_dir / initramfs_name(kernel_version)
        args = [
            self._initramfs_tool,
            "--force",
            "--confdir",
            str(conf_dir),
            "--kver",
            kernel_version,
            str(output),
        ]

        logger.info("Building initramfs for %s", kernel_version)
        self._run(args, what=f"initramfs for {kernel_version}")

        if not output.is_file():
            msg = f"{self._initramfs_tool} reported success but produced no {output.name}"
            raise BuildFailedError(msg, args, 0, "")

        return BuildArtifact(kind=ArtifactKind.INITRAMFS, path=output)

    def build_unified_efi(
        self,
        kernel: KernelImage,
        initramfs: Path,
        cmdline: str,
        stub: Path,
        os_release: Path = Path("/etc/os-release"),
    ) -> BuildArtifact:
        """Embed kernel, initramfs and command line into an EFI stub.

        Args:
            kernel: Kernel to embed.
            initramfs: Initramfs image to embed.
            cmdline: Kernel command line.
            stub: EFI stub the sections are added to.
            os_release: os-release file embedded as metadata.

        Returns:
            The unified EFI artifact in the scratch area.

        Raises:
            MissingPreconditionError: If the stub or the embedder is absent.
            BuildFailedError: If the embedder exits non-zero.
        """
        if not stub.is_file():
            msg = f"EFI stub not found: {stub}"
            raise MissingPreconditionError(msg)

        cmdline_file = self.scratch_dir / CMDLINE_FILENAME
        cmdline_file.write_text(cmdline + "\n")

        output = self.scratch_dir / efi_name(kernel.prefix, kernel.version)
        args = [self._embed_tool]
        for (section, address), blob in (
            (OSREL_SECTION, os_release),
            (CMDLINE_SECTION, cmdline_file),
            (LINUX_SECTION, kernel.path),
            (INITRD_SECTION, initramfs),
        ):
            args += [
                "--add-section",
                f"{section}={blob}",
                "--change-section-vma",
                f"{section}={address}",
            ]
        args += [str(stub), str(output)]

        logger.info("Building unified EFI image for %s", kernel.version)
        self._run(args, what=f"EFI image for {kernel.version}")

        return BuildArtifact(kind=ArtifactKind.UNIFIED_EFI, path=output)

    def _run(self, args: list[str], what: str) -> CommandResult:
        """Run a build tool and turn failures into build errors."""
        tool = args[0]
        if not command_exists(tool):
            msg = f"Build tool not found: {tool}"
            raise MissingPreconditionError(msg)

        logger.debug("Running %s", " ".join(args))
        try:
            result = run_command(args, timeout=self._timeout, cwd=str(self.scratch_dir))
        except subprocess.TimeoutExpired as e:
            msg = f"Building {what} timed out after {e.timeout} seconds"
            raise BuildFailedError(msg, args, -1, "") from e
        except OSError as e:
            msg = f"Cannot run {tool}: {e}"
            raise BuildFailedError(msg, args, -1, "") from e

        if not result.success:
            msg = f"Building {what} failed ({tool} exited with status {result.returncode})"
            raise BuildFailedError(msg, args, result.returncode, result.output)

        return result
