"""Path management for kernctl.

kernctl is a privileged system tool, so its configuration lives under /etc.
Per-user settings (currently only the color theme) follow the XDG Base
Directory Specification.

Defaults:
- System config: /etc/kernctl/config.toml (override: KERNCTL_CONFIG)
- User config: ~/.config/kernctl/
- Scratch base: /var/tmp (override: KERNCTL_TMPDIR)
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "kernctl"

DEFAULT_CONFIG_PATH = Path("/etc") / APP_NAME / "config.toml"
DEFAULT_SCRATCH_BASE = Path("/var/tmp")


def get_config_path() -> Path:
    """Get the system configuration file path.

    Returns:
        Path from KERNCTL_CONFIG if set, otherwise /etc/kernctl/config.toml.
    """
    override = os.environ.get("KERNCTL_CONFIG")
    if override:
        return Path(override)
    return DEFAULT_CONFIG_PATH


def get_user_config_dir() -> Path:
    """Get the per-user configuration directory path.

    Returns:
        Path to ~/.config/kernctl/ (or XDG_CONFIG_HOME/kernctl/).
    """
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_scratch_base() -> Path:
    """Get the default base directory for per-run scratch areas.

    /var/tmp is preferred over /tmp because initramfs images can be large
    and /tmp is often a small tmpfs.

    Returns:
        Path from KERNCTL_TMPDIR if set, otherwise /var/tmp.
    """
    override = os.environ.get("KERNCTL_TMPDIR")
    if override:
        return Path(override)
    return DEFAULT_SCRATCH_BASE


def ensure_dir(path: Path, name: str) -> Path:
    """Create directory (with parents) if it doesn't exist.

    Args:
        path: Directory path to create.
        name: Human-readable name for error messages.

    Returns:
        The created/existing directory path.

    Raises:
        RuntimeError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path
