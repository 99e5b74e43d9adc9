"""Output colors.

The bundled ``kernctl/data/theme.toml`` defines every color; a user file at
``~/.config/kernctl/theme.toml`` may override any subset of its ``[colors]``
table. Each color names one style used by the retention and listing output.
"""

import logging
import tomllib
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from rich.theme import Theme

from kernctl.core.paths import get_user_config_dir

logger = logging.getLogger(__name__)

HexColor = Annotated[str, Field(pattern=r"^#(?:[0-9a-fA-F]{3}){1,2}$")]

# Styles rendered bold on top of their color.
BOLD_STYLES = frozenset({"error", "version_default"})


class ThemeColors(BaseModel):
    """One hex color (#RGB or #RRGGBB) per output style."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    muted: HexColor = "#b2bec3"
    header: HexColor = "#69B9A1"
    border: HexColor = "#29526d"

    success: HexColor = "#03b971"
    warning: HexColor = "#f5b332"
    error: HexColor = "#f53263"
    info: HexColor = "#0ec1c8"

    # Retention table statuses
    placed: HexColor = "#c1ff62"
    removed: HexColor = "#f53263"
    kept: HexColor = "#0e8ac8"

    # Menu default vs. older builds in `kernctl list`
    version_default: HexColor = "#69B9A1"
    version_other: HexColor = "#226666"


def get_user_theme_path() -> Path:
    """Path of the user's color overrides (XDG config dir aware)."""
    return get_user_config_dir() / "theme.toml"


def get_bundled_theme_path() -> Path:
    """Path of the theme file shipped with the package."""
    return Path(str(resources.files("kernctl.data").joinpath("theme.toml")))


def _read_colors(path: Path) -> dict[str, Any]:
    """Return the ``[colors]`` table of a theme file; {} if absent or unreadable."""
    try:
        with open(path, "rb") as f:
            colors = tomllib.load(f).get("colors", {})
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring theme file %s: %s", path, e)
        return {}
    if not isinstance(colors, dict):
        logger.warning("Ignoring theme file %s: [colors] is not a table", path)
        return {}
    return colors


def load_theme(user_path: Path | None = None) -> ThemeColors:
    """Load the bundled colors merged with the user's overrides.

    An invalid override falls back to the default colors as a whole, so a
    typo never leaves the output half themed.

    Args:
        user_path: Override file; defaults to get_user_theme_path().
    """
    colors = _read_colors(get_bundled_theme_path())
    colors.update(_read_colors(user_path or get_user_theme_path()))
    try:
        return ThemeColors.model_validate(colors)
    except ValidationError as e:
        logger.warning("Invalid theme colors, using defaults: %s", e)
        return ThemeColors()


def get_rich_theme(colors: ThemeColors) -> Theme:
    """Map theme colors to Rich styles, plus ``bold_header`` for table headers."""
    styles = {
        name: f"bold {color}" if name in BOLD_STYLES else color
        for name, color in colors.model_dump().items()
    }
    styles["bold_header"] = f"bold {colors.header}"
    return Theme(styles)


@cache
def get_theme() -> Theme:
    """The Rich theme of the shared consoles, loaded once per process."""
    return get_rich_theme(load_theme())
