"""Tests for priority mode and the outcome history."""

import random

import pytest

from conftest import failing, make_suite

from testharness.core.executor import RunMediator, RunResult, SequentialSuiteRunner
from testharness.core.models import TestIdentity, TestStatus
from testharness.priority import PRIORITY_LEVELS, PriorityChecker, PriorityResultListener
from testharness.priority.checker import history_key
from testharness.storage import OutcomeHistory


@pytest.fixture
def history(tmp_path):
    return OutcomeHistory(tmp_path / "history" / "priority.db")


def identity(level=None):
    attributes = {} if level is None else {"priority": level}
    return TestIdentity("FooTest", "test_a", path="t.py", attributes=attributes)


class TestOutcomeHistory:
    """Tests for OutcomeHistory."""

    def test_creates_database(self, tmp_path):
        """Test that the database and its directory are created."""
        db_path = tmp_path / "nested" / "priority.db"
        OutcomeHistory(db_path)
        assert db_path.exists()

    def test_record_and_replace(self, history):
        """Test that only the latest status is kept."""
        assert history.last_status("t.py::FooTest#test_a") is None

        history.record("t.py::FooTest#test_a", TestStatus.FAILED)
        history.record("t.py::FooTest#test_a", TestStatus.PASSED)

        assert history.last_status("t.py::FooTest#test_a") == TestStatus.PASSED
        assert history.count() == 1

    def test_persists_across_instances(self, tmp_path):
        """Test that outcomes survive reopening the database."""
        db_path = tmp_path / "priority.db"
        OutcomeHistory(db_path).record("key", "error")
        assert OutcomeHistory(db_path).last_status("key") == TestStatus.ERROR


class TestPriorityChecker:
    """Tests for PriorityChecker."""

    def test_levels(self):
        """Test the run probability of each level."""
        assert PRIORITY_LEVELS == {
            "must": 1.0,
            "important": 0.9,
            "high": 0.7,
            "normal": 0.5,
            "low": 0.25,
            "never": 0.0,
        }

    def test_never_run_test_always_runs(self, history):
        """Test that a test without history runs even at priority never."""
        checker = PriorityChecker(history)
        assert checker.need_to_run(identity("never"))

    def test_previous_failure_always_runs(self, history):
        """Test that a test that did not pass last time runs."""
        history.record(history_key(identity("never")), TestStatus.FAILED)
        assert PriorityChecker(history).need_to_run(identity("never"))

    def test_previous_pass_uses_priority(self, history):
        """Test must and never after a pass."""
        history.record(history_key(identity()), TestStatus.PASSED)
        checker = PriorityChecker(history)

        assert checker.need_to_run(identity("must"))
        assert not checker.need_to_run(identity("never"))

    def test_probability(self, history):
        """Test that a level's probability is roughly honored."""
        history.record(history_key(identity()), TestStatus.PASSED)
        checker = PriorityChecker(history, rng=random.Random(7))

        runs = sum(checker.need_to_run(identity("low")) for _ in range(2000))

        assert 400 < runs < 600

    def test_default_priority(self, history):
        """Test that tests without a level use the default."""
        checker = PriorityChecker(history, default_priority="high")
        assert checker.priority_of(identity()) == "high"
        assert checker.priority_of(identity("bogus")) == "high"
        assert checker.priority_of(identity("low")) == "low"


class TestPriorityResultListener:
    """Tests for PriorityResultListener."""

    def test_records_outcomes(self, history):
        """Test that finished tests are stored by key."""
        suite = make_suite(lambda: None, failing)
        result = RunResult()
        mediator = RunMediator(result)
        PriorityResultListener(history).attach_to_mediator(mediator)

        SequentialSuiteRunner(suite).run(result, mediator)

        keys = [history_key(identity) for identity in suite.identities]
        assert history.last_status(keys[0]) == TestStatus.PASSED
        assert history.last_status(keys[1]) == TestStatus.FAILED
