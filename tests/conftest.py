"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from kernctl.core.config import KernctlConfig


@pytest.fixture
def boot_dir(tmp_path: Path) -> Path:
    """An empty directory standing in for the mounted boot partition."""
    path = tmp_path / "boot"
    path.mkdir()
    return path


@pytest.fixture
def kernel_dir(tmp_path: Path) -> Path:
    """An empty kernel search directory."""
    path = tmp_path / "kernels"
    path.mkdir()
    return path


@pytest.fixture
def mounts_file(tmp_path: Path, boot_dir: Path) -> Path:
    """A mount table in which the boot directory is already mounted."""
    path = tmp_path / "mounts"
    path.write_text(
        "proc /proc proc rw,nosuid 0 0\n"
        f"/dev/sda1 {boot_dir} vfat rw,relatime 0 0\n"
    )
    return path


@pytest.fixture
def make_kernel(kernel_dir: Path) -> Callable[..., Path]:
    """Factory creating kernel image files in the kernel search directory."""

    def _make(name: str, content: str | None = None) -> Path:
        path = kernel_dir / name
        path.write_text(content if content is not None else f"kernel {name}")
        return path

    return _make


@pytest.fixture
def make_config(tmp_path: Path, boot_dir: Path, kernel_dir: Path) -> Callable[..., KernctlConfig]:
    """Factory building a configuration rooted entirely in tmp_path.

    Keyword arguments are merged section by section into the defaults.
    """

    def _make(**overrides: Any) -> KernctlConfig:
        data: dict[str, Any] = {
            "mount_point": str(boot_dir),
            "cmdline": "root=/dev/sda2 rw",
            "kernel": {"search_dir": str(kernel_dir)},
            "initramfs": {"conf_dir": str(tmp_path / "dracut.conf.d")},
            "efi": {
                "enabled": False,
                "image_dir": str(boot_dir / "EFI" / "Linux"),
                "stub": str(tmp_path / "linuxx64.efi.stub"),
                "os_release": str(tmp_path / "os-release"),
            },
            "components": {"enabled": True, "copies": 3, "image_dir": str(boot_dir)},
            "menu": {"path": str(boot_dir / "syslinux" / "syslinux.cfg")},
            "scratch": {"base_dir": str(tmp_path / "scratch")},
        }
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return KernctlConfig.model_validate(data)

    return _make
