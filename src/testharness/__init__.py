"""
TestHarness - automatic runner for unittest-based test suites.

This package provides tools to:
- Discover test cases from loaded classes or from test files on disk
- Select tests by name, test case, location, attribute or priority
- Drive data-driven tests from declared data sets
- Run suites sequentially or in parallel and report the results
"""

__version__ = "0.1.0"
__author__ = "TestHarness Team"

from testharness.core.datasets import DataSets
from testharness.core.filters import FilterChain
from testharness.core.orchestrator import Orchestrator, need_auto_run, run

# Imported after the modules above: loading the ``testharness.priority``
# subpackage rebinds the package attribute ``priority``, so the decorator
# must be bound last.
from testharness.core.attributes import attribute, data, priority  # noqa: E402

__all__ = [
    "DataSets",
    "FilterChain",
    "Orchestrator",
    "attribute",
    "data",
    "need_auto_run",
    "priority",
    "run",
]
