"""Base class for reporting runners."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from testharness.core.executor import RunEvent, RunMediator, RunResult, SequentialSuiteRunner
from testharness.core.models import TestSuite


class ReportingRunner(ABC):
    """Runs a suite with the configured execution strategy and reports on it.

    Recognized options:
        listeners: Objects with ``attach_to_mediator(mediator)``
        test_suite_runner_class: Execution strategy (default: sequential)
        n_workers: Worker count for parallel strategies
        debug_on_failure: Open pdb on failures
        max_diff_target_string_size: maxDiff for unittest cases
        color_scheme: ColorScheme used by colored output

    Any other option is specific to the runner.
    """

    def __init__(self, options: Optional[dict[str, Any]] = None):
        self.options = dict(options or {})

    def run(self, suite: TestSuite, options: Optional[dict[str, Any]] = None) -> RunResult:
        options = {**self.options, **(options or {})}
        result = RunResult()
        mediator = RunMediator(result)

        for listener in options.get("listeners") or []:
            listener.attach_to_mediator(mediator)
        self.attach_to_mediator(mediator, options)

        suite_runner_class = options.get("test_suite_runner_class") or SequentialSuiteRunner
        suite_runner = suite_runner_class(
            suite,
            n_workers=options.get("n_workers"),
            debug_on_failure=options.get("debug_on_failure", False),
            max_diff=options.get("max_diff_target_string_size"),
        )

        mediator.notify(RunEvent.STARTED, suite)
        suite_runner.run(result, mediator)
        mediator.notify(RunEvent.FINISHED, result)
        return result

    @abstractmethod
    def attach_to_mediator(self, mediator: RunMediator, options: dict[str, Any]) -> None:
        """Subscribe the runner's own output to run events."""
        pass
