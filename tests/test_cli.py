"""Tests for the command-line entry point."""

import logging
import sys

import pytest

from testharness.cli import configure_logging, main


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_from_environment(self, monkeypatch):
        """Test that the log level comes from the environment."""
        monkeypatch.setenv("TESTHARNESS_LOG_LEVEL", "debug")
        configure_logging()
        assert logging.getLogger("testharness").level == logging.DEBUG

    def test_default_level(self, monkeypatch):
        """Test that warnings and above are shown by default."""
        monkeypatch.delenv("TESTHARNESS_LOG_LEVEL", raising=False)
        configure_logging()
        logger = logging.getLogger("testharness")
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1


class TestMain:
    """Tests for main."""

    def test_exit_status(self, workspace, monkeypatch, capsys):
        """Test the exit status for passing and failing runs."""
        monkeypatch.delenv("EMACS", raising=False)
        (workspace / "test_cli_sample.py").write_text(
            "import unittest\n"
            "\n"
            "\n"
            "class CliSampleTest(unittest.TestCase):\n"
            "    def test_pass(self):\n"
            "        pass\n"
            "\n"
            "    def test_fail(self):\n"
            "        self.fail('boom')\n"
        )
        sample = str(workspace / "test_cli_sample.py")

        monkeypatch.setattr(sys, "argv", ["testharness", sample, "--name", "test_pass"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 0

        monkeypatch.setattr(sys, "argv", ["testharness", sample])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "Total Tests" in capsys.readouterr().out

    def test_bad_option(self, workspace, monkeypatch):
        """Test that invalid options exit with a failure."""
        monkeypatch.setattr(sys, "argv", ["testharness", "--bogus"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
