"""Reporting runners, registered under their ids on import."""

from testharness.core.registry import register_runner
from testharness.report.base import ReportingRunner
from testharness.report.colors import ColorScheme
from testharness.report.console import ConsoleRunner, EmacsRunner
from testharness.report.xml import XmlRunner

register_runner("console", lambda: ConsoleRunner())
register_runner("emacs", lambda: EmacsRunner())
register_runner("xml", lambda: XmlRunner())

__all__ = ["ColorScheme", "ConsoleRunner", "EmacsRunner", "ReportingRunner", "XmlRunner"]
