"""Data models for discovered tests, suites and outcomes."""

import pdb
import random
import sys
import time
import unittest
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional


class TestStatus(str, Enum):
    """Status of a test execution."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class TestIdentity:
    """Where a test was declared and what it is called."""

    __test__ = False

    class_name: str
    method_name: str
    local_name: Optional[str] = None
    path: Optional[str] = None
    line: Optional[int] = None
    end_line: Optional[int] = None
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    class_hierarchy: tuple[str, ...] = ()
    qualified_hierarchy: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.local_name is None:
            object.__setattr__(self, "local_name", self.method_name)

    @property
    def full_name(self) -> str:
        return f"{self.class_name}#{self.method_name}"

    @property
    def ancestors(self) -> tuple[str, ...]:
        """Class names from the declaring class upward."""
        return self.class_hierarchy or (self.class_name,)

    @property
    def qualified_ancestors(self) -> tuple[str, ...]:
        """Module-qualified class names from the declaring class upward."""
        return self.qualified_hierarchy or self.ancestors

    def defined_at(self, path: Optional[str] = None, line: Optional[int] = None) -> bool:
        """Check whether this test is declared at the given path and/or line."""
        if path is not None:
            if self.path is None:
                return False
            if Path(path).resolve() != Path(self.path).resolve():
                return False
        if line is not None:
            if self.line is None:
                return False
            end_line = self.end_line or self.line
            if not self.line <= line <= end_line:
                return False
        return True

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "class_name": self.class_name,
            "method_name": self.method_name,
            "local_name": self.local_name,
            "path": self.path,
            "line": self.line,
            "attributes": dict(self.attributes),
        }


@dataclass
class TestOutcome:
    """Represents the result of a single test."""

    __test__ = False

    identity: TestIdentity
    status: TestStatus = TestStatus.PASSED
    duration_ms: int = 0
    message: str = ""

    @property
    def passed(self) -> bool:
        return self.status in (TestStatus.PASSED, TestStatus.SKIPPED)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "name": self.identity.full_name,
            "path": self.identity.path,
            "line": self.identity.line,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "message": self.message,
        }


class TestItem:
    """A runnable test backed by a plain callable."""

    __test__ = False

    def __init__(self, identity: TestIdentity, function: Callable[[], Any]):
        self.identity = identity
        self.function = function

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identity.full_name}>"

    def run(
        self,
        debug_on_failure: bool = False,
        max_diff: Optional[int] = None,
    ) -> TestOutcome:
        """Run the test and convert whatever it raises into an outcome."""
        start_time = time.time()
        status = TestStatus.PASSED
        message = ""

        try:
            self.function()
        except unittest.SkipTest as e:
            status = TestStatus.SKIPPED
            message = str(e)
        except AssertionError as e:
            status = TestStatus.FAILED
            message = str(e) or type(e).__name__
            if debug_on_failure:
                pdb.post_mortem(sys.exc_info()[2])
        except Exception as e:
            status = TestStatus.ERROR
            message = f"{type(e).__name__}: {e}"

        return TestOutcome(
            identity=self.identity,
            status=status,
            duration_ms=int((time.time() - start_time) * 1000),
            message=message,
        )


AVAILABLE_ORDERS = ("alphabetic", "random", "defined")


@dataclass
class TestSuite:
    """An ordered collection of tests handed to one execution strategy."""

    __test__ = False

    name: str
    tests: list[TestItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tests)

    def __iter__(self) -> Iterator[TestItem]:
        return iter(self.tests)

    @property
    def empty(self) -> bool:
        return not self.tests

    @property
    def identities(self) -> list[TestIdentity]:
        return [test.identity for test in self.tests]

    def ordered(self, order: str, rng: Optional[random.Random] = None) -> "TestSuite":
        """Return a copy with tests reordered inside each test class.

        Classes keep the order in which they were discovered.
        """
        if order not in AVAILABLE_ORDERS:
            raise ValueError(f"Order must be one of: {AVAILABLE_ORDERS}")

        groups: dict[str, list[TestItem]] = {}
        for test in self.tests:
            groups.setdefault(test.identity.class_name, []).append(test)

        rng = rng or random.Random()
        tests = []
        for group in groups.values():
            if order == "alphabetic":
                group = sorted(group, key=lambda t: t.identity.method_name)
            elif order == "random":
                group = list(group)
                rng.shuffle(group)
            else:
                group = sorted(group, key=lambda t: t.identity.line or 0)
            tests.extend(group)

        return TestSuite(name=self.name, tests=tests)
