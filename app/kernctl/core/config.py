"""Run configuration.

This module provides the immutable configuration model and the I/O functions
for the kernctl configuration file. The configuration is loaded once at
startup and passed explicitly to every component.

Configuration is stored in /etc/kernctl/config.toml
"""

import logging
import os
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated, Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kernctl.core.paths import DEFAULT_SCRATCH_BASE, get_config_path
from kernctl.models.retention import RotationPolicy, SingleSlotPolicy, VersionedPolicy

logger = logging.getLogger(__name__)

DEFAULT_KERNEL_PREFIXES = ("vmlinuz", "vmlinux", "bzImage", "kernel")


class _Section(BaseModel):
    """Common settings for all configuration sections."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class KernelConfig(_Section):
    """Where to find the kernel to install.

    Attributes:
        search_dir: Directory searched for the newest kernel.
        prefixes: Kernel naming prefixes, in priority order.
        path: Explicit kernel image; bypasses the search when set.
    """

    search_dir: Annotated[Path, Field(description="Kernel search directory")] = Path(
        "/usr/lib/kernel"
    )
    prefixes: Annotated[
        tuple[str, ...],
        Field(min_length=1, description="Kernel naming prefixes in priority order"),
    ] = DEFAULT_KERNEL_PREFIXES
    path: Annotated[Path | None, Field(description="Explicit kernel image")] = None

    @field_validator("prefixes")
    @classmethod
    def validate_prefixes(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Reject empty prefixes and prefixes containing the name separator."""
        for prefix in v:
            if not prefix or "-" in prefix or "/" in prefix:
                msg = f"invalid kernel prefix {prefix!r}"
                raise ValueError(msg)
        return v


class InitramfsConfig(_Section):
    """Initramfs generator settings.

    Attributes:
        tool: Initramfs generator executable.
        conf_dir: Configuration directory passed to the generator.
    """

    tool: Annotated[str, Field(min_length=1, description="Initramfs generator")] = "dracut"
    conf_dir: Annotated[Path, Field(description="Generator config directory")] = Path(
        "/etc/dracut.conf.d"
    )


class RotationConfig(_Section):
    """Settings shared by both rotation modes.

    Attributes:
        enabled: Whether this mode is reconciled at all.
        versioned: Versioned rotation if True, single slot with backup otherwise.
        copies: Maximum number of retained builds for versioned rotation.
        image_dir: Target directory of this mode.
    """

    enabled: bool = True
    versioned: bool = True
    copies: Annotated[int, Field(ge=1, le=100, description="Retained builds (1-100)")] = 3
    image_dir: Path = Path("/boot")

    @property
    def policy(self) -> RotationPolicy:
        """The rotation policy described by this section."""
        if self.versioned:
            return VersionedPolicy(max_copies=self.copies)
        return SingleSlotPolicy()


class EfiConfig(RotationConfig):
    """Unified EFI image settings.

    Attributes:
        stub: EFI stub the image sections are embedded into.
        os_release: os-release file embedded as the .osrel section.
        tool: Section embedding executable.
    """

    enabled: bool = False
    image_dir: Path = Path("/boot/EFI/Linux")
    stub: Path = Path("/usr/lib/systemd/boot/efi/linuxx64.efi.stub")
    os_release: Path = Path("/etc/os-release")
    tool: Annotated[str, Field(min_length=1)] = "objcopy"


class ComponentsConfig(RotationConfig):
    """Split kernel and initramfs settings."""


class MenuConfig(_Section):
    """Bootloader menu settings.

    Attributes:
        enabled: Whether the menu is regenerated.
        path: Final location of the generated menu.
        title: Menu title.
        timeout: Menu timeout in tenths of a second.
    """

    enabled: bool = True
    path: Path = Path("/boot/syslinux/syslinux.cfg")
    title: str = "Boot Menu"
    timeout: Annotated[int, Field(ge=0, description="Timeout in 1/10 s")] = 50


class ScratchConfig(_Section):
    """Scratch area settings.

    Attributes:
        base_dir: Directory the per-run scratch area is created in.
    """

    base_dir: Path = DEFAULT_SCRATCH_BASE


class KernctlConfig(_Section):
    """Complete kernctl configuration.

    Attributes:
        manage: Master switch; when False a run exits without doing anything.
        mount_point: Boot partition mount point.
        cmdline: Kernel command line for menu entries and EFI images.
    """

    manage: bool = True
    mount_point: Path = Path("/boot")
    cmdline: str = ""
    kernel: KernelConfig = KernelConfig()
    initramfs: InitramfsConfig = InitramfsConfig()
    efi: EfiConfig = EfiConfig()
    components: ComponentsConfig = ComponentsConfig()
    menu: MenuConfig = MenuConfig()
    scratch: ScratchConfig = ScratchConfig()

    @field_validator("cmdline")
    @classmethod
    def validate_cmdline(cls, v: str) -> str:
        """The command line must fit on a single menu line."""
        if "\n" in v:
            msg = "cmdline must not contain newlines"
            raise ValueError(msg)
        return v.strip()


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the configuration file cannot be parsed."""


class ConfigValidationError(ConfigError):
    """Raised when the configuration content is invalid."""


def load_config(path: Path | None = None) -> KernctlConfig:
    """Load and validate the configuration from a TOML file.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Validated, immutable KernctlConfig.

    Raises:
        ConfigNotFoundError: If the config file doesn't exist.
        ConfigParseError: If the TOML syntax is invalid.
        ConfigValidationError: If the content doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        raise ConfigNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        config = KernctlConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid config content: {e}") from e

    logger.debug("Loaded config from %s", config_path)
    return config


def require_config(config_path: Path | None = None) -> KernctlConfig:
    """Load the configuration or exit with a helpful error message.

    Args:
        config_path: Optional custom config path.

    Returns:
        Loaded and validated KernctlConfig.

    Raises:
        typer.Exit: If the configuration cannot be loaded.
    """
    import typer
    from rich.markup import escape

    from kernctl.utils.formatting import print_error, print_info

    path = config_path or get_config_path()
    try:
        return load_config(path)
    except ConfigNotFoundError as e:
        print_error(f"Config not found: {escape(str(path))}")
        print_info("Run 'kernctl config init' to create a default configuration.")
        raise typer.Exit(code=1) from e
    except ConfigError as e:
        print_error(f"Failed to load config: {escape(str(e))}")
        raise typer.Exit(code=1) from e


def save_config(config: KernctlConfig, path: Path | None = None) -> Path:
    """Save a configuration to a TOML file.

    The file is written atomically by first writing to a temporary file
    in the same directory and then using os.replace() for atomic rename.

    Args:
        config: The configuration to save.
        path: Destination. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()

    data = config_to_dict(config)

    tmp_path: Path | None = None
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="wb",
            dir=config_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(config_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write config: {e}") from e

    return config_path


def config_to_dict(config: KernctlConfig) -> dict[str, Any]:
    """Convert a configuration to a dictionary suitable for TOML serialization.

    Paths become strings and unset optional values are dropped, since TOML
    has no null.

    Args:
        config: The configuration to convert.

    Returns:
        Dictionary ready for TOML serialization.
    """
    return config.model_dump(mode="json", exclude_none=True)
