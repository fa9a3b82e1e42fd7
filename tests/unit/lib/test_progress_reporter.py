"""Tests for deployment progress reporting and logging setup."""

import logging
from unittest.mock import patch

import pytest

from axon.lib.logging_config import ROOT_LOGGER_NAME, setup_logging
from axon.lib.ui.progress import ProgressReporter
from axon.lib.ui.terminal import use_color


class TestProgressReporter:
    """Tests for ProgressReporter output."""

    def test_step_and_detail_lines(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test steps and details go to stdout."""
        reporter = ProgressReporter(color=False)

        reporter.step("Starting container")
        reporter.info("Port 32768")
        reporter.success("Healthy")

        out = capsys.readouterr().out
        assert out.splitlines() == [
            "==> Starting container",
            "    Port 32768",
            "    Healthy",
        ]
        assert reporter.lines == out.splitlines()

    def test_quiet_keeps_warnings(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test quiet mode only prints warnings and failures."""
        reporter = ProgressReporter(quiet=True, color=False)

        reporter.step("Starting container")
        reporter.info("detail")
        reporter.warning("cleanup incomplete")
        reporter.failure("reload failed")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.splitlines() == [
            "    Warning: cleanup incomplete",
            "    Failed: reload failed",
        ]

    def test_color_follows_terminal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("axon.lib.ui.progress.use_color", lambda: True)
        assert ProgressReporter().color is True


class TestUseColor:
    """Tests for color detection."""

    def test_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        with patch("sys.stdout.isatty", return_value=True):
            assert use_color() is True

    def test_not_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        with patch("sys.stdout.isatty", return_value=False):
            assert use_color() is False

    def test_no_color_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test NO_COLOR disables colors even on a terminal."""
        monkeypatch.setenv("NO_COLOR", "1")
        with patch("sys.stdout.isatty", return_value=True):
            assert use_color() is False


class TestSetupLogging:
    """Tests for logging configuration."""

    @pytest.mark.parametrize(
        ("verbose", "quiet", "level"),
        [
            (False, False, logging.INFO),
            (True, False, logging.DEBUG),
            (False, True, logging.WARNING),
        ],
    )
    def test_levels(self, verbose: bool, quiet: bool, level: int) -> None:
        setup_logging(verbose=verbose, quiet=quiet)

        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert root.level == level
        assert len(root.handlers) == 1

    def test_third_party_loggers_quietened(self) -> None:
        setup_logging()
        assert logging.getLogger("paramiko").level == logging.WARNING

        setup_logging(verbose=True)
        assert logging.getLogger("paramiko").level == logging.DEBUG
