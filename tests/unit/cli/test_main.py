"""Unit tests for the main CLI application."""

import logging
from collections.abc import Iterator

import pytest
from kernctl import __version__
from kernctl.cli.main import app
from rich.logging import RichHandler
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    """Undo the handler the CLI installs on the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestMainApp:
    """Tests for the kernctl application and global options."""

    def test_version(self) -> None:
        """--version prints the version and exits."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"kernctl version {__version__}" in result.stdout

    def test_no_args_shows_help(self) -> None:
        """Running without a command shows the commands."""
        result = runner.invoke(app, [])

        for command in ("update", "list", "config"):
            assert command in result.output

    def test_verbose_enables_debug_logging(self) -> None:
        """--verbose routes DEBUG records to a RichHandler."""
        runner.invoke(app, ["--verbose", "config", "--help"])

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert sum(isinstance(h, RichHandler) for h in root.handlers) == 1

    def test_default_logs_warnings_only(self) -> None:
        """Without --verbose only warnings and errors are logged."""
        runner.invoke(app, ["config", "--help"])
        runner.invoke(app, ["config", "--help"])

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert sum(isinstance(h, RichHandler) for h in root.handlers) == 1
