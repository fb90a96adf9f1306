"""Priority mode: decide whether a test needs to run this time."""

import random
import threading
from typing import Optional

from testharness.core.executor import RunEvent, RunMediator
from testharness.core.models import TestIdentity, TestOutcome, TestStatus
from testharness.storage.history import OutcomeHistory

# Chance that a test which passed last time is run again.
PRIORITY_LEVELS = {
    "must": 1.0,
    "important": 0.9,
    "high": 0.7,
    "normal": 0.5,
    "low": 0.25,
    "never": 0.0,
}

DEFAULT_PRIORITY = "normal"


class PriorityChecker:
    """Decides whether a test runs based on its priority and last outcome.

    A test whose previous outcome was anything but a pass always runs.
    Otherwise it runs with the probability of its priority level.
    """

    def __init__(
        self,
        history: OutcomeHistory,
        default_priority: str = DEFAULT_PRIORITY,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the checker.

        Args:
            history: Store of previous test outcomes
            default_priority: Level used for tests without a priority attribute
            rng: Random source (default: a fresh ``random.Random``)
        """
        self.history = history
        self.default_priority = default_priority
        self.rng = rng or random.Random()
        self._lock = threading.Lock()

    def priority_of(self, test: TestIdentity) -> str:
        level = test.attributes.get("priority", self.default_priority)
        if level not in PRIORITY_LEVELS:
            return self.default_priority
        return level

    def previous_test_success(self, test: TestIdentity) -> bool:
        return self.history.last_status(history_key(test)) == TestStatus.PASSED

    def need_to_run(self, test: TestIdentity) -> bool:
        if not self.previous_test_success(test):
            return True

        chance = PRIORITY_LEVELS[self.priority_of(test)]
        if chance >= 1.0:
            return True
        if chance <= 0.0:
            return False
        with self._lock:
            return self.rng.random() < chance


def history_key(test: TestIdentity) -> str:
    """Key used to store a test's outcome."""
    return f"{test.path or ''}::{test.full_name}"


class PriorityResultListener:
    """Records each finished test's outcome for the next priority run."""

    def __init__(self, history: OutcomeHistory):
        self.history = history

    def attach_to_mediator(self, mediator: RunMediator) -> None:
        mediator.add_listener(RunEvent.TEST_FINISHED, self._record)

    def _record(self, outcome: TestOutcome) -> None:
        self.history.record(history_key(outcome.identity), outcome.status)
