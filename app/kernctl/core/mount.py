"""Boot partition mount handling.

MountGuard mounts the boot partition for the duration of a run and unmounts
it afterwards, but only if this run mounted it. Release is idempotent and is
reached from the context manager exit as well as from SIGINT/SIGTERM.
"""

import logging
import signal
import subprocess
from enum import Enum
from pathlib import Path
from types import FrameType, TracebackType
from typing import Any

from kernctl.utils.shell import run_command

logger = logging.getLogger(__name__)

DEFAULT_MOUNTS_FILE = Path("/proc/self/mounts")

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class MountState(str, Enum):
    """Outcome of MountGuard.acquire().

    Attributes:
        ACQUIRED: This run mounted the partition and owns the mount.
        ALREADY_MOUNTED: Someone else mounted it; it is left alone.
        FAILED: Mounting failed; the run continues best-effort.
    """

    ACQUIRED = "acquired"
    ALREADY_MOUNTED = "already_mounted"
    FAILED = "failed"


def _unescape_mount_field(field: str) -> str:
    """Decode the octal escapes the kernel uses in the mount table."""
    return (
        field.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


def is_mounted(mount_point: Path, mounts_file: Path = DEFAULT_MOUNTS_FILE) -> bool:
    """Check whether a path is a mount point according to the mount table.

    Args:
        mount_point: Path to look for.
        mounts_file: Mount table in /proc/mounts format.

    Returns:
        True if a mount entry has exactly this target.
    """
    try:
        table = mounts_file.read_text()
    except OSError as e:
        logger.warning("Cannot read mount table %s: %s", mounts_file, e)
        return False

    target = str(mount_point).rstrip("/") or "/"
    for line in table.splitlines():
        fields = line.split()
        if len(fields) >= 2 and _unescape_mount_field(fields[1]) == target:
            return True
    return False


class MountGuard:
    """Scoped ownership of the boot partition mount.

    Attributes:
        mount_point: Boot partition mount point.
    """

    def __init__(self, mount_point: Path, *, mounts_file: Path = DEFAULT_MOUNTS_FILE) -> None:
        """Initialize the guard.

        Args:
            mount_point: Mount point listed in fstab.
            mounts_file: Mount table consulted by acquire().
        """
        self.mount_point = mount_point
        self._mounts_file = mounts_file
        self._owned = False
        self._previous_handlers: dict[int, Any] = {}

    @property
    def owned(self) -> bool:
        """Whether this guard mounted the partition and still owns it."""
        return self._owned

    def acquire(self) -> MountState:
        """Mount the partition unless it is already mounted.

        Mount failures are logged and reported, never raised: later
        placement errors surface naturally if the partition is unusable.

        Returns:
            The resulting MountState.
        """
        if is_mounted(self.mount_point, self._mounts_file):
            logger.debug("%s is already mounted", self.mount_point)
            return MountState.ALREADY_MOUNTED

        try:
            result = run_command(["mount", str(self.mount_point)])
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Cannot mount %s: %s", self.mount_point, e)
            return MountState.FAILED

        if not result.success:
            logger.warning(
                "Cannot mount %s: %s",
                self.mount_point,
                result.stderr.strip() or f"exit status {result.returncode}",
            )
            return MountState.FAILED

        self._owned = True
        logger.info("Mounted %s", self.mount_point)
        return MountState.ACQUIRED

    def release(self) -> None:
        """Unmount the partition if this guard mounted it.

        Safe to call any number of times; only the first call after a
        successful acquire() unmounts.
        """
        if not self._owned:
            return
        self._owned = False

        try:
            result = run_command(["umount", str(self.mount_point)])
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Cannot unmount %s: %s", self.mount_point, e)
            return

        if result.success:
            logger.info("Unmounted %s", self.mount_point)
        else:
            logger.warning(
                "Cannot unmount %s: %s",
                self.mount_point,
                result.stderr.strip() or f"exit status {result.returncode}",
            )

    def install_signal_handlers(self) -> None:
        """Release the mount on SIGINT/SIGTERM, then exit.

        The handler raises SystemExit so that every enclosing context
        manager (scratch area included) unwinds as well.
        """
        for signum in HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def restore_signal_handlers(self) -> None:
        """Reinstate the handlers active before install_signal_handlers()."""
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.warning("Received %s, releasing %s", signal.Signals(signum).name, self.mount_point)
        self.release()
        raise SystemExit(128 + signum)

    def __enter__(self) -> "MountGuard":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
