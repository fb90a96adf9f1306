"""Suite execution strategies and run listeners.

A reporting runner creates a ``RunResult`` and a ``RunMediator``, attaches
listeners to the mediator, and hands both to one suite runner. Suite runners
notify the mediator around each test; listeners react to those events.
"""

import gc
import logging
import os
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Optional

from testharness.core.models import TestItem, TestOutcome, TestStatus, TestSuite

logger = logging.getLogger(__name__)


class RunEvent(str, Enum):
    """Events published while a suite runs."""

    STARTED = "started"
    TEST_STARTED = "test_started"
    TEST_FINISHED = "test_finished"
    FINISHED = "finished"


class RunResult:
    """Aggregated outcomes of one run. Safe to update from any worker."""

    def __init__(self):
        self.outcomes: list[TestOutcome] = []
        self._stopped = False
        self._lock = threading.Lock()

    def add_outcome(self, outcome: TestOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)

    def stop(self) -> None:
        """Ask the suite runner to schedule no further tests."""
        with self._lock:
            self._stopped = True

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._stopped

    def count(self, status: TestStatus) -> int:
        with self._lock:
            return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def total(self) -> int:
        with self._lock:
            return len(self.outcomes)

    @property
    def passed(self) -> bool:
        """True when no test failed or errored."""
        with self._lock:
            return all(outcome.passed for outcome in self.outcomes)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "passed": self.count(TestStatus.PASSED),
            "failed": self.count(TestStatus.FAILED),
            "errors": self.count(TestStatus.ERROR),
            "skipped": self.count(TestStatus.SKIPPED),
        }


class RunMediator:
    """Dispatches run events to registered listeners."""

    def __init__(self, result: RunResult):
        self.result = result
        self._listeners: dict[RunEvent, list[Callable[..., Any]]] = defaultdict(list)
        self._lock = threading.Lock()

    def add_listener(self, event: RunEvent, callback: Callable[..., Any]) -> None:
        with self._lock:
            self._listeners[event].append(callback)

    def notify(self, event: RunEvent, *args: Any) -> None:
        with self._lock:
            callbacks = list(self._listeners[event])
        for callback in callbacks:
            callback(*args)


def default_n_workers() -> int:
    return os.cpu_count() or 1


class SequentialSuiteRunner:
    """Runs the tests of a suite one after another."""

    def __init__(
        self,
        suite: TestSuite,
        n_workers: Optional[int] = None,
        debug_on_failure: bool = False,
        max_diff: Optional[int] = None,
    ):
        self.suite = suite
        self.n_workers = n_workers or default_n_workers()
        self.debug_on_failure = debug_on_failure
        self.max_diff = max_diff

    def run(self, result: RunResult, mediator: RunMediator) -> None:
        for test in self.suite:
            if result.stopped:
                break
            self._run_test(test, result, mediator)

    def _run_test(self, test: TestItem, result: RunResult, mediator: RunMediator) -> None:
        # Queued work that had not started when the run was stopped is dropped.
        if result.stopped:
            return

        mediator.notify(RunEvent.TEST_STARTED, test)
        outcome = test.run(debug_on_failure=self.debug_on_failure, max_diff=self.max_diff)
        result.add_outcome(outcome)
        mediator.notify(RunEvent.TEST_FINISHED, outcome)


class ThreadSuiteRunner(SequentialSuiteRunner):
    """Runs the tests of a suite on a fixed-size thread pool.

    Outcome order is not guaranteed. Stopping only prevents tests that have
    not started yet; tests already running finish normally.
    """

    def run(self, result: RunResult, mediator: RunMediator) -> None:
        logger.debug("Running %d tests on %d workers", len(self.suite), self.n_workers)
        with ThreadPoolExecutor(max_workers=self.n_workers) as executor:
            futures = [
                executor.submit(self._run_test, test, result, mediator)
                for test in self.suite
            ]
            for future in futures:
                future.result()


class StopOnFailureListener:
    """Stops the run on the first test that does not pass."""

    def attach_to_mediator(self, mediator: RunMediator) -> None:
        def stop_unless_passed(outcome: TestOutcome) -> None:
            if not outcome.passed:
                mediator.result.stop()

        mediator.add_listener(RunEvent.TEST_FINISHED, stop_unless_passed)


class GCStressListener:
    """Collects garbage aggressively while tests are running.

    Thresholds are lowered when the first concurrent test starts and
    restored when the last one finishes.
    """

    STRESS_THRESHOLD = (1, 1, 1)

    def __init__(self):
        self._running = 0
        self._saved_threshold: Optional[tuple[int, ...]] = None
        self._lock = threading.Lock()

    def attach_to_mediator(self, mediator: RunMediator) -> None:
        mediator.add_listener(RunEvent.TEST_STARTED, self._test_started)
        mediator.add_listener(RunEvent.TEST_FINISHED, self._test_finished)

    def _test_started(self, test: TestItem) -> None:
        with self._lock:
            self._running += 1
            if self._running == 1:
                gc.collect()
                self._saved_threshold = gc.get_threshold()
                gc.set_threshold(*self.STRESS_THRESHOLD)

    def _test_finished(self, outcome: TestOutcome) -> None:
        with self._lock:
            self._running -= 1
            if self._running == 0 and self._saved_threshold is not None:
                gc.set_threshold(*self._saved_threshold)
                self._saved_threshold = None
                gc.collect()

    @property
    def active(self) -> bool:
        with self._lock:
            return self._saved_threshold is not None
