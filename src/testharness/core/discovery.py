"""Test discovery: build suites of ``unittest.TestCase`` tests.

Two collectors are registered:

- ``descendant`` walks the ``unittest.TestCase`` subclasses already loaded
  in the process;
- ``load`` walks the filesystem, imports test files and collects the test
  classes they define.
"""

import functools
import importlib.util
import inspect
import logging
import os
import pdb
import re
import sys
import time
import unittest
from itertools import takewhile
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any, Iterator, Optional

from testharness.core.attributes import get_attributes, get_data_sets
from testharness.core.filters import FilterChain
from testharness.core.models import TestIdentity, TestItem, TestOutcome, TestStatus, TestSuite
from testharness.core.registry import register_collector

if TYPE_CHECKING:
    from testharness.core.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

_NO_DATA = object()


class _OutcomeResult(unittest.TestResult):
    """unittest result that can drop into the debugger on failures."""

    def __init__(self, debug_on_failure: bool = False):
        super().__init__()
        self.debug_on_failure = debug_on_failure

    def addFailure(self, test, err):
        if self.debug_on_failure:
            pdb.post_mortem(err[2])
        super().addFailure(test, err)


class UnittestItem(TestItem):
    """Runs one method of a ``unittest.TestCase`` subclass."""

    def __init__(
        self,
        identity: TestIdentity,
        case_class: type[unittest.TestCase],
        test_method_name: str,
        data: Any = _NO_DATA,
    ):
        super().__init__(identity, function=None)
        self.case_class = case_class
        self.test_method_name = test_method_name
        self.data = data

    def run(
        self,
        debug_on_failure: bool = False,
        max_diff: Optional[int] = None,
    ) -> TestOutcome:
        start_time = time.time()
        case = self.case_class(self.test_method_name)
        if max_diff is not None:
            case.maxDiff = max_diff
        if self.data is not _NO_DATA:
            method = getattr(case, self.test_method_name)
            setattr(case, self.test_method_name, functools.partial(method, self.data))

        result = _OutcomeResult(debug_on_failure)
        case.run(result)

        if result.errors:
            status, message = TestStatus.ERROR, result.errors[0][1]
        elif result.failures:
            status, message = TestStatus.FAILED, result.failures[0][1]
        elif result.unexpectedSuccesses:
            status, message = TestStatus.FAILED, "Unexpected success"
        elif result.skipped:
            status, message = TestStatus.SKIPPED, result.skipped[0][1]
        else:
            status, message = TestStatus.PASSED, ""

        return TestOutcome(
            identity=self.identity,
            status=status,
            duration_ms=int((time.time() - start_time) * 1000),
            message=message,
        )


def _source_location(function: Any) -> tuple[Optional[str], Optional[int], Optional[int]]:
    try:
        function = inspect.unwrap(function)
        path = inspect.getsourcefile(function)
        lines, start = inspect.getsourcelines(function)
    except (OSError, TypeError):
        return None, None, None
    return path, start, start + len(lines) - 1


def build_items(case_class: type[unittest.TestCase]) -> list[TestItem]:
    """Create test items for every test method of ``case_class``.

    Methods carrying data sets produce one item per binding, named
    ``method[label]``. An inherited method only keeps the data sets marked
    ``keep``.
    """
    classes = list(takewhile(lambda k: k is not unittest.TestCase, case_class.__mro__))
    hierarchy = tuple(klass.__qualname__ for klass in classes)
    qualified_hierarchy = tuple(f"{klass.__module__}.{klass.__qualname__}" for klass in classes)
    items: list[TestItem] = []

    for name in unittest.TestLoader().getTestCaseNames(case_class):
        function = getattr(case_class, name)
        path, line, end_line = _source_location(function)
        attributes = get_attributes(case_class, function)

        def identity(method_name: str) -> TestIdentity:
            return TestIdentity(
                class_name=case_class.__qualname__,
                method_name=method_name,
                local_name=name,
                path=path,
                line=line,
                end_line=end_line,
                attributes=attributes,
                class_hierarchy=hierarchy,
                qualified_hierarchy=qualified_hierarchy,
            )

        data_sets = get_data_sets(function)
        if data_sets is None:
            items.append(UnittestItem(identity(name), case_class, name))
            continue

        if name not in vars(case_class):
            data_sets = data_sets.keep()
        for label, value in data_sets:
            items.append(UnittestItem(identity(f"{name}[{label}]"), case_class, name, value))

    return items


def _is_collectable(case_class: type) -> bool:
    if case_class.__module__.split(".")[0] == "unittest":
        return False
    return getattr(case_class, "__test__", True) is not False


class DescendantCollector:
    """Collects tests from the ``unittest.TestCase`` subclasses already loaded."""

    def __init__(self, filters: Optional[FilterChain] = None):
        self.filters = filters or FilterChain()

    def collect(self, name: str = "descendant") -> TestSuite:
        items = []
        for case_class in self._descendants(unittest.TestCase):
            if _is_collectable(case_class):
                items.extend(build_items(case_class))
        return TestSuite(name, [item for item in items if self.filters.accepts(item.identity)])

    def _descendants(self, root: type) -> Iterator[type]:
        seen: set[type] = set()
        pending = list(root.__subclasses__())
        while pending:
            klass = pending.pop(0)
            if klass in seen:
                continue
            seen.add(klass)
            yield klass
            pending.extend(klass.__subclasses__())


DEFAULT_PATTERNS = [
    re.compile(r"\Atest[_\-].+\.py\Z"),
    re.compile(r"[_\-]test\.py\Z"),
]


class LoadCollector:
    """Collects tests by importing test files found under the given paths."""

    def __init__(self, filters: Optional[FilterChain] = None):
        self.filters = filters or FilterChain()
        self.patterns: list[re.Pattern] = list(DEFAULT_PATTERNS)
        self.excludes: list[re.Pattern] = []
        self.base: Optional[str] = None
        self.default_test_paths: list[str] = []

    def collect(self, *paths: str) -> Optional[TestSuite]:
        """Collect tests from files and directories.

        Falls back to the default test paths, then to the base directory.

        Returns:
            The suite, or None when a path does not exist
        """
        base = Path(self.base or ".")
        targets = list(paths) or list(self.default_test_paths) or ["."]

        files: list[Path] = []
        for target in targets:
            path = Path(target)
            if not path.is_absolute():
                path = base / path
            if path.is_dir():
                files.extend(self._find_test_files(path, base))
            elif path.is_file():
                files.append(path)
            else:
                logger.error("Test path not found: %s", path)
                return None

        items: list[TestItem] = []
        seen: set[Path] = set()
        for file_path in files:
            resolved = file_path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            items.extend(self._collect_file(file_path))

        name = targets[0] if len(targets) == 1 else str(base)
        return TestSuite(name, [item for item in items if self.filters.accepts(item.identity)])

    def _find_test_files(self, directory: Path, base: Path) -> list[Path]:
        found = []
        for root, dirs, files in os.walk(directory):
            dirs[:] = sorted(d for d in dirs if not d.startswith((".", "__pycache__")))
            for file_name in sorted(files):
                path = Path(root) / file_name
                if self._target_file(path, base):
                    found.append(path)
        return found

    def _target_file(self, path: Path, base: Path) -> bool:
        if not any(pattern.search(path.name) for pattern in self.patterns):
            return False
        try:
            relative = path.relative_to(base).as_posix()
        except ValueError:
            relative = path.as_posix()
        return not any(exclude.search(relative) for exclude in self.excludes)

    def _collect_file(self, path: Path) -> list[TestItem]:
        try:
            module = self._load_module(path)
        except Exception as e:
            logger.error("Failed to load %s: %s", path, e)
            return [_load_error_item(path, e)]

        items: list[TestItem] = []
        for value in list(vars(module).values()):
            if (
                isinstance(value, type)
                and issubclass(value, unittest.TestCase)
                and value.__module__ == module.__name__
                and _is_collectable(value)
            ):
                items.extend(build_items(value))
        logger.debug("Collected %d tests from %s", len(items), path)
        return items

    def _load_module(self, path: Path) -> ModuleType:
        directory = str(path.parent.resolve())
        if directory not in sys.path:
            sys.path.insert(0, directory)

        module_name = path.stem
        existing = sys.modules.get(module_name)
        if existing is not None:
            existing_file = getattr(existing, "__file__", None)
            if existing_file and Path(existing_file).resolve() == path.resolve():
                return existing
            module_name = f"_testharness_{abs(hash(str(path.resolve())))}_{path.stem}"

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot import {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            del sys.modules[module_name]
            raise
        return module


def _load_error_item(path: Path, error: Exception) -> TestItem:
    def raise_load_error() -> None:
        raise error

    identity = TestIdentity(
        class_name=path.stem,
        method_name="load",
        path=str(path),
        line=1,
    )
    return TestItem(identity, raise_load_error)


@register_collector("descendant")
def _collect_descendants(orchestrator: "Orchestrator") -> TestSuite:
    collector = DescendantCollector(orchestrator.filters)
    return collector.collect(Path(sys.argv[0]).stem or "descendant")


@register_collector("load")
def _collect_by_loading(orchestrator: "Orchestrator") -> Optional[TestSuite]:
    collector = LoadCollector(orchestrator.filters)
    if orchestrator.pattern:
        collector.patterns = list(orchestrator.pattern)
    if orchestrator.exclude:
        collector.excludes = list(orchestrator.exclude)
    collector.base = orchestrator.base
    collector.default_test_paths = list(orchestrator.default_test_paths)
    return collector.collect(*orchestrator.to_run)
