"""Unit tests for update orchestration.

The build tools and mount commands are patched; everything else runs against
directories in tmp_path.
"""

import signal
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from kernctl.core import retention
from kernctl.core.builder import BuildFailedError, MissingPreconditionError
from kernctl.core.config import KernctlConfig
from kernctl.core.mount import MountState
from kernctl.core.retention import CopyFailedError
from kernctl.core.runner import UpdateRunner
from kernctl.core.selector import KernelNotFoundError
from kernctl.models.artifact import ArtifactKind
from kernctl.models.retention import RotationMode
from kernctl.utils.shell import CommandResult


def _fake_tool(args: list[str], **kwargs: object) -> CommandResult:
    """Write the output file named by the last argument, like the real tools."""
    Path(args[-1]).write_text(f"built by {args[0]}")
    return CommandResult(stdout="", stderr="", returncode=0)


@pytest.fixture
def tools() -> Iterator[MagicMock]:
    """Patch the build tools to succeed."""
    with (
        patch("kernctl.core.builder.command_exists", return_value=True),
        patch("kernctl.core.builder.run_command", side_effect=_fake_tool) as mock_run,
    ):
        yield mock_run


@pytest.fixture
def stub(tmp_path: Path) -> Path:
    path = tmp_path / "linuxx64.efi.stub"
    path.write_text("stub")
    return path


def _run(config: KernctlConfig, mounts_file: Path, **kwargs: object):
    return UpdateRunner(config, mounts_file=mounts_file, **kwargs).run()  # type: ignore[arg-type]


class TestUpdateRunner:
    """Tests for UpdateRunner.run."""

    def test_disabled(self, make_config: Callable[..., KernctlConfig], mounts_file: Path) -> None:
        """manage = false returns None without touching anything."""
        with patch("kernctl.core.runner.MountGuard") as mock_guard:
            assert _run(make_config(manage=False), mounts_file) is None

        mock_guard.assert_not_called()

    def test_components_lifecycle(
        self,
        tools: MagicMock,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """Three updates with copies=2 leave {2, 3} and a matching menu."""
        config = make_config(components={"copies": 2})

        for version in ("1", "2", "3"):
            make_kernel(f"vmlinuz-{version}")
            report = _run(config, mounts_file)
            assert report is not None
            assert report.success

        assert report.kernel.version == "3"
        assert report.mount_state == MountState.ALREADY_MOUNTED
        assert report.artifact(ArtifactKind.INITRAMFS) is not None
        assert report.artifact(ArtifactKind.UNIFIED_EFI) is None
        assert sorted(p.name for p in boot_dir.glob("vmlinuz-*")) == ["vmlinuz-2", "vmlinuz-3"]
        assert sorted(p.name for p in boot_dir.glob("initramfs-*")) == [
            "initramfs-2.img",
            "initramfs-3.img",
        ]
        assert (boot_dir / "vmlinuz-3").read_text() == "kernel vmlinuz-3"

        menu = config.menu.path.read_text()
        assert report.menu_path == config.menu.path
        assert "DEFAULT vmlinuz-3" in menu
        assert "LINUX /vmlinuz-2" in menu
        assert "vmlinuz-1" not in menu

    def test_menu_after_switch_to_versioned(
        self,
        tools: MagicMock,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """Slots from a previous single-slot setup do not become the default."""
        make_kernel("vmlinuz-6.6.1")
        _run(make_config(components={"versioned": False}), mounts_file)
        assert (boot_dir / "vmlinuz-current").is_file()

        make_kernel("vmlinuz-6.6.2")
        config = make_config()
        report = _run(config, mounts_file)

        assert report is not None and report.success
        assert report.kernel.version == "6.6.2"
        menu = config.menu.path.read_text()
        assert "DEFAULT vmlinuz-6.6.2\n" in menu
        assert "vmlinuz-current" not in menu

    def test_efi_and_components(
        self,
        tools: MagicMock,
        stub: Path,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """Both modes are reconciled into their own directories."""
        make_kernel("vmlinuz-6.6")
        config = make_config(efi={"enabled": True})

        report = _run(config, mounts_file)

        assert report is not None and report.success
        assert [r.mode for r in report.retention] == [RotationMode.EFI, RotationMode.COMPONENTS]
        assert (boot_dir / "EFI" / "Linux" / "vmlinuz-6.6.EFI").is_file()
        assert (boot_dir / "vmlinuz-6.6").is_file()
        assert [c.args[0][0] for c in tools.call_args_list] == ["dracut", "objcopy"]

    def test_scratch_removed(
        self,
        tools: MagicMock,
        tmp_path: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """The scratch area is gone after the run."""
        make_kernel("vmlinuz-6.6")

        _run(make_config(), mounts_file)

        assert list((tmp_path / "scratch").iterdir()) == []

    def test_missing_stub_aborts_before_build(
        self,
        tools: MagicMock,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """Without an EFI stub nothing is built or placed."""
        make_kernel("vmlinuz-6.6")

        with pytest.raises(MissingPreconditionError):
            _run(make_config(efi={"enabled": True}), mounts_file)

        tools.assert_not_called()
        assert not (boot_dir / "vmlinuz-6.6").exists()

    def test_build_failure_places_nothing(
        self,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """A failing generator aborts the run with its output."""
        make_kernel("vmlinuz-6.6")
        failed = CommandResult(stdout="", stderr="dracut: failed\n", returncode=1)

        with (
            patch("kernctl.core.builder.command_exists", return_value=True),
            patch("kernctl.core.builder.run_command", return_value=failed),
            pytest.raises(BuildFailedError) as exc_info,
        ):
            _run(make_config(), mounts_file)

        assert exc_info.value.output == "dracut: failed"
        assert not (boot_dir / "vmlinuz-6.6").exists()

    def test_no_kernel(self, make_config: Callable[..., KernctlConfig], mounts_file: Path) -> None:
        """A missing kernel is fatal."""
        with pytest.raises(KernelNotFoundError):
            _run(make_config(), mounts_file)

    def test_efi_failure_isolated(
        self,
        tools: MagicMock,
        stub: Path,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """An EFI copy failure does not stop components or the menu."""
        make_kernel("vmlinuz-6.6")
        config = make_config(efi={"enabled": True})

        real_place_files = retention.place_files

        def failing_efi(pairs: list[tuple[Path, Path]]) -> list[Path]:
            if any(dest.suffix == ".EFI" for _, dest in pairs):
                raise CopyFailedError("Cannot copy image: No space left on device")
            return real_place_files(pairs)

        with patch("kernctl.core.retention.place_files", side_effect=failing_efi):
            report = _run(config, mounts_file)

        assert report is not None
        assert not report.success
        efi, components = report.retention
        assert not efi.success
        assert components.success
        assert (boot_dir / "vmlinuz-6.6").is_file()
        assert report.menu_path == config.menu.path
        assert "DEFAULT vmlinuz-6.6" in config.menu.path.read_text()

    def test_menu_failure_reported(
        self,
        tools: MagicMock,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """A menu that cannot be written fails the run after placement."""
        make_kernel("vmlinuz-6.6")
        config = make_config()
        config.menu.path.mkdir(parents=True)

        report = _run(config, mounts_file)

        assert report is not None
        assert report.menu_error is not None
        assert not report.success
        assert all(r.success for r in report.retention)

    def test_prune_only(
        self,
        tools: MagicMock,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """--prune-only builds nothing and trims to the configured count."""
        for version in ("1", "2", "3"):
            (boot_dir / f"vmlinuz-{version}").write_text(version)
            (boot_dir / f"initramfs-{version}.img").write_text(version)
        make_kernel("vmlinuz-4")

        report = _run(make_config(components={"copies": 1}), mounts_file, prune_only=True)

        assert report is not None and report.success
        tools.assert_not_called()
        assert report.artifacts == ()
        assert sorted(p.name for p in boot_dir.glob("vmlinuz-*")) == ["vmlinuz-3"]

    def test_empty_menu_not_written(
        self,
        tools: MagicMock,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """With nothing retained no menu is written."""
        make_kernel("vmlinuz-4")
        config = make_config()

        report = _run(config, mounts_file, prune_only=True)

        assert report is not None and report.success
        assert report.menu_path is None
        assert not config.menu.path.exists()

    def test_explicit_kernel(
        self,
        tools: MagicMock,
        tmp_path: Path,
        boot_dir: Path,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """An explicit kernel is installed instead of the newest one."""
        make_kernel("vmlinuz-9.9")
        custom = tmp_path / "bzImage-6.1-custom"
        custom.write_text("custom")

        report = _run(make_config(), mounts_file, kernel_override=custom)

        assert report is not None
        assert report.kernel.prefix == "bzImage"
        assert (boot_dir / "bzImage-6.1-custom").read_text() == "custom"
        assert not (boot_dir / "vmlinuz-9.9").exists()

    def test_mounts_and_unmounts(
        self,
        tools: MagicMock,
        tmp_path: Path,
        boot_dir: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """An unmounted boot partition is mounted for the run and released after."""
        make_kernel("vmlinuz-6.6")
        empty = tmp_path / "empty-mounts"
        empty.write_text("")
        ok = CommandResult(stdout="", stderr="", returncode=0)

        with patch("kernctl.core.mount.run_command", return_value=ok) as mock_mount:
            report = _run(make_config(), empty)

        assert report is not None
        assert report.mount_state == MountState.ACQUIRED
        assert [c.args[0][0] for c in mock_mount.call_args_list] == ["mount", "umount"]

    def test_unmounts_on_failure(
        self,
        tmp_path: Path,
        make_config: Callable[..., KernctlConfig],
    ) -> None:
        """The partition is released even when the run aborts."""
        empty = tmp_path / "empty-mounts"
        empty.write_text("")
        ok = CommandResult(stdout="", stderr="", returncode=0)

        with (
            patch("kernctl.core.mount.run_command", return_value=ok) as mock_mount,
            pytest.raises(KernelNotFoundError),
        ):
            _run(make_config(), empty)

        assert mock_mount.call_args_list[-1].args[0][0] == "umount"

    def test_signal_handlers_restored(
        self,
        tools: MagicMock,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """SIGTERM handling is back to what it was after the run."""
        make_kernel("vmlinuz-6.6")
        before = signal.getsignal(signal.SIGTERM)

        _run(make_config(), mounts_file)

        assert signal.getsignal(signal.SIGTERM) == before

    def test_progress_callback(
        self,
        tools: MagicMock,
        mounts_file: Path,
        make_config: Callable[..., KernctlConfig],
        make_kernel: Callable[..., Path],
    ) -> None:
        """on_step is told about each step."""
        make_kernel("vmlinuz-6.6")
        steps: list[str] = []

        _run(make_config(), mounts_file, on_step=steps.append)

        assert any(s.startswith("Selected kernel") for s in steps)
        assert any(s.startswith("Building initramfs") for s in steps)
        assert any(s.startswith("Writing menu") for s in steps)
