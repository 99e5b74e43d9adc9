"""Unit tests for kernel version ordering."""

import itertools

import pytest
from kernctl.core.version import compare_versions, latest, sort_versions, version_key

SAMPLE_VERSIONS = [
    "5.4",
    "5.9",
    "5.10",
    "5.10.1",
    "6.1-rc2",
    "6.1-rc10",
    "6.1",
    "6.1.0",
    "6.01",
    "6.6.1-gentoo",
    "6.6.1-gentoo-r1",
    "current",
    "backup",
]


class TestCompareVersions:
    """Tests for compare_versions function."""

    @pytest.mark.parametrize(
        ("older", "newer"),
        [
            ("2.9", "2.10"),
            ("5.9", "5.10"),
            ("5.4", "5.10"),
            ("9", "10"),
            ("6.1-rc2", "6.1-rc10"),
            ("6.1", "6.1.1"),
            ("6.6.1-gentoo", "6.6.1-gentoo-r1"),
        ],
    )
    def test_orders_numerically(self, older: str, newer: str) -> None:
        """Digit runs compare as numbers, not as text."""
        assert compare_versions(older, newer) == -1
        assert compare_versions(newer, older) == 1

    def test_kernel_filenames(self) -> None:
        """Whole filenames order the same way."""
        assert compare_versions("kernel-9", "kernel-10") == -1

    def test_equal_only_if_identical(self) -> None:
        """Equal numeric value with different spelling is not equal."""
        assert compare_versions("6.1", "6.1") == 0
        assert compare_versions("6.01", "6.1") != 0

    def test_digits_sort_before_text(self) -> None:
        """A digit run sorts before a text run at the same position."""
        assert compare_versions("1", "a") == -1
        assert compare_versions("a", "1") == 1

    def test_empty_version_sorts_first(self) -> None:
        """The empty string is the smallest version."""
        assert compare_versions("", "0") == -1

    def test_antisymmetric(self) -> None:
        """compare(a, b) == -compare(b, a) for all pairs."""
        for a, b in itertools.product(SAMPLE_VERSIONS, repeat=2):
            assert compare_versions(a, b) == -compare_versions(b, a)
            assert (compare_versions(a, b) == 0) == (a == b)

    def test_transitive(self) -> None:
        """a < b and b < c imply a < c."""
        for a, b, c in itertools.permutations(SAMPLE_VERSIONS, 3):
            if compare_versions(a, b) < 0 and compare_versions(b, c) < 0:
                assert compare_versions(a, c) < 0


class TestVersionKey:
    """Tests for version_key function."""

    def test_sorting_with_key(self) -> None:
        """version_key sorts like compare_versions."""
        assert sorted(["5.10", "5.4", "5.9"], key=version_key) == ["5.4", "5.9", "5.10"]


class TestSortVersions:
    """Tests for sort_versions function."""

    def test_ascending(self) -> None:
        """Versions are sorted oldest first by default."""
        assert sort_versions(["3", "1", "2"]) == ["1", "2", "3"]

    def test_descending(self) -> None:
        """descending=True puts the newest first."""
        assert sort_versions(["1", "10", "2"], descending=True) == ["10", "2", "1"]


class TestLatest:
    """Tests for latest function."""

    def test_returns_maximum(self) -> None:
        """latest picks the highest version."""
        assert latest(["5.10", "5.4", "5.9"]) == "5.10"

    def test_empty(self) -> None:
        """latest returns None for no versions."""
        assert latest([]) is None

    def test_current_beats_backup(self) -> None:
        """The current slot sorts after the backup slot."""
        assert latest(["backup", "current"]) == "current"
