"""Kernel version ordering.

Kernel versions are not parsed into numeric fields. A version string is split
into maximal runs of digits and non-digits; digit runs compare as numbers and
everything else compares as text. This yields "5.9" < "5.10" and
"6.1-rc2" < "6.1-rc10" without knowing anything about the versioning scheme
of a particular distribution.
"""

import re
from collections.abc import Iterable

_SEGMENT_RE = re.compile(r"([0-9]+)|([^0-9]+)")

# Digit runs sort before text runs at the same position.
_NUMERIC = 0
_TEXT = 1

VersionKey = tuple[tuple[int, int, str], ...]


def version_key(version: str) -> VersionKey:
    """Build a sort key for a version string.

    Each segment becomes ``(kind, number, text)``. The text is kept for digit
    runs too, so that "01" and "1" compare unequal and the order stays
    antisymmetric. Tuple comparison makes a shorter, otherwise equal key sort
    first.

    Args:
        version: Version string, e.g. "6.6.1-gentoo".

    Returns:
        A key usable with ``sorted(..., key=version_key)``.
    """
    key: list[tuple[int, int, str]] = []
    for digits, text in _SEGMENT_RE.findall(version):
        if digits:
            key.append((_NUMERIC, int(digits), digits))
        else:
            key.append((_TEXT, 0, text))
    return tuple(key)


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings.

    Args:
        a: First version.
        b: Second version.

    Returns:
        -1 if a sorts before b, 0 if they are equal, 1 if a sorts after b.
    """
    key_a = version_key(a)
    key_b = version_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_versions(versions: Iterable[str], *, descending: bool = False) -> list[str]:
    """Sort version strings, oldest first unless descending is set."""
    return sorted(versions, key=version_key, reverse=descending)


def latest(versions: Iterable[str]) -> str | None:
    """Return the highest version, or None for an empty input."""
    return max(versions, key=version_key, default=None)
