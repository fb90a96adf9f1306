"""Shared fixtures for testharness tests."""

import sys
from pathlib import Path

import pytest

from testharness.config import HarnessSettings
from testharness.core.executor import RunEvent
from testharness.core.models import TestIdentity, TestItem, TestSuite
from testharness.core.registry import StrategyRegistry
from testharness.report.base import ReportingRunner


class RecordingRunner(ReportingRunner):
    """Reporting runner that keeps the last result instead of printing it."""

    def __init__(self, options=None):
        super().__init__(options)
        self.result = None
        self.suites = []
        self.received_options = None

    def attach_to_mediator(self, mediator, options):
        self.received_options = options
        mediator.add_listener(RunEvent.STARTED, self.suites.append)
        mediator.add_listener(RunEvent.FINISHED, self._finished)

    def _finished(self, result):
        self.result = result


def make_item(name, function=None, class_name="SampleTest", **identity):
    """Build a test item from a plain callable."""
    return TestItem(
        TestIdentity(class_name=class_name, method_name=name, **identity),
        function or (lambda: None),
    )


def make_suite(*functions, name="suite"):
    """Build a suite with one item per callable, named test_0, test_1, ..."""
    return TestSuite(
        name,
        [make_item(f"test_{index}", function) for index, function in enumerate(functions)],
    )


def failing():
    raise AssertionError("boom")


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Empty working directory with an empty home, so no config file is picked up."""
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    monkeypatch.setattr(sys, "path", list(sys.path))
    return work


@pytest.fixture
def home(workspace):
    return Path.home()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the process-wide defaults."""
    return HarnessSettings(
        n_workers=2,
        priority_history_path=str(tmp_path / "history" / "priority.db"),
    )


@pytest.fixture
def recording_runner():
    return RecordingRunner()


@pytest.fixture
def runners(recording_runner):
    """Runner registry holding only the recording runner, under ``record``."""
    registry = StrategyRegistry("runner")
    registry.register("record", lambda: recording_runner)
    return registry
