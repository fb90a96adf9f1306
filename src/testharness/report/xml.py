"""JUnit-style XML reporting runner using Jinja2 templates."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from testharness.core.executor import RunEvent, RunMediator, RunResult
from testharness.core.models import TestSuite
from testharness.report.base import ReportingRunner


class XmlRunner(ReportingRunner):
    """Writes a JUnit-style XML report once the run has finished.

    Extra options:
        output: Path of the report file (default: print to stdout)
    """

    def __init__(self, options: Optional[dict[str, Any]] = None):
        super().__init__(options)

        # Set up Jinja2 environment
        template_dir = Path(__file__).parent / "templates"
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.filters["seconds"] = self._format_seconds

    def attach_to_mediator(self, mediator: RunMediator, options: dict[str, Any]) -> None:
        self.output = options.get("output")
        self.suite_name = "testharness"
        self.started_at = datetime.now()
        mediator.add_listener(RunEvent.STARTED, self._started)
        mediator.add_listener(RunEvent.FINISHED, self._finished)

    def _started(self, suite: TestSuite) -> None:
        self.suite_name = suite.name
        self.started_at = datetime.now()

    def _finished(self, result: RunResult) -> None:
        xml = self.render(result)
        if self.output:
            output_path = Path(self.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(xml, encoding="utf-8")
        else:
            sys.stdout.write(xml)

    def render(self, result: RunResult) -> str:
        """Render the report for ``result``."""
        template = self.env.get_template("junit.xml")
        return template.render(
            suite_name=self.suite_name,
            timestamp=self.started_at.isoformat(timespec="seconds"),
            summary=result.summary(),
            outcomes=list(result.outcomes),
        )

    @staticmethod
    def _format_seconds(duration_ms: int) -> str:
        return f"{duration_ms / 1000:.3f}"
