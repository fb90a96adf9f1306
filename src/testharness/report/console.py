"""Console and Emacs reporting runners."""

import sys
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from testharness.core.executor import RunEvent, RunMediator, RunResult
from testharness.core.models import TestOutcome, TestStatus, TestSuite
from testharness.report.base import ReportingRunner
from testharness.report.colors import ColorScheme

MARKS = {
    TestStatus.PASSED: ".",
    TestStatus.FAILED: "F",
    TestStatus.ERROR: "E",
    TestStatus.SKIPPED: "S",
}


class ConsoleRunner(ReportingRunner):
    """Prints progress marks, failure details and a summary table.

    Extra options:
        output: File-like object to write to (default: stdout)
        verbose: Print one line per test instead of marks
    """

    def attach_to_mediator(self, mediator: RunMediator, options: dict[str, Any]) -> None:
        self.console = Console(file=options.get("output") or sys.stdout, highlight=False)
        self.color_scheme = options.get("color_scheme") or ColorScheme.default()
        self.verbose = bool(options.get("verbose", False))

        mediator.add_listener(RunEvent.STARTED, self._started)
        mediator.add_listener(RunEvent.TEST_FINISHED, self._test_finished)
        mediator.add_listener(RunEvent.FINISHED, self._finished)

    def _started(self, suite: TestSuite) -> None:
        self.console.print(f"Started {escape(suite.name)} ({len(suite)} tests)")

    def _test_finished(self, outcome: TestOutcome) -> None:
        style = self.color_scheme.style_for(outcome.status)
        if self.verbose:
            self.console.print(
                f"  {escape(outcome.identity.full_name)} ... {outcome.status.value} "
                f"({outcome.duration_ms}ms)",
                style=style,
            )
        else:
            self.console.print(MARKS[outcome.status], style=style, end="")

    def _finished(self, result: RunResult) -> None:
        if not self.verbose:
            self.console.print()

        for outcome in result.outcomes:
            if outcome.status in (TestStatus.FAILED, TestStatus.ERROR):
                identity = outcome.identity
                location = f"{identity.path}:{identity.line}" if identity.path else "?"
                self.console.print(
                    f"\n{outcome.status.value.capitalize()}: {escape(identity.full_name)} "
                    f"{escape(f'[{location}]')}",
                    style=self.color_scheme.style_for(outcome.status),
                )
                if outcome.message:
                    self.console.print(outcome.message, markup=False)

        self._display_summary(result)

    def _display_summary(self, result: RunResult) -> None:
        summary = result.summary()

        table = Table(show_header=False, box=None)
        table.add_column("Metric", style=self.color_scheme["summary"])
        table.add_column("Value", justify="right")

        table.add_row("Total Tests", str(summary["total"]))
        for status, key in (
            (TestStatus.PASSED, "passed"),
            (TestStatus.FAILED, "failed"),
            (TestStatus.ERROR, "errors"),
            (TestStatus.SKIPPED, "skipped"),
        ):
            table.add_row(key.capitalize(), str(summary[key]), style=self.color_scheme.style_for(status))

        if summary["total"] > 0:
            pass_rate = (summary["passed"] / summary["total"]) * 100
            table.add_row("Pass Rate", f"{pass_rate:.1f}%")

        self.console.print()
        self.console.print(table)
        if result.stopped:
            self.console.print("Stopped after the first failure.")


class EmacsRunner(ReportingRunner):
    """Prints compilation-mode friendly ``path:line:`` lines without color.

    Extra options:
        output: File-like object to write to (default: stdout)
    """

    def attach_to_mediator(self, mediator: RunMediator, options: dict[str, Any]) -> None:
        self.output = options.get("output") or sys.stdout
        mediator.add_listener(RunEvent.FINISHED, self._finished)

    def _finished(self, result: RunResult) -> None:
        for outcome in result.outcomes:
            if outcome.status not in (TestStatus.FAILED, TestStatus.ERROR):
                continue
            identity = outcome.identity
            message = outcome.message.splitlines()[0] if outcome.message else ""
            print(
                f"{identity.path or '-'}:{identity.line or 0}: "
                f"{identity.full_name}: {outcome.status.value}: {message}",
                file=self.output,
            )

        summary = result.summary()
        print(
            f"{summary['total']} tests, {summary['passed']} passed, "
            f"{summary['failed']} failures, {summary['errors']} errors, "
            f"{summary['skipped']} skipped",
            file=self.output,
        )
