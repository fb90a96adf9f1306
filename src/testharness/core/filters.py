"""Filters deciding which discovered tests run."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, Optional, Protocol, Union

from testharness.core.attributes import AttributeMatcher
from testharness.core.models import TestIdentity
from testharness.errors import ConfigParseError

NamePattern = Union[str, re.Pattern]

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "x": re.VERBOSE,
}


def prepare_name(name: str) -> NamePattern:
    """Turn ``/pattern/flags`` into a compiled regex; keep anything else literal."""
    match = re.fullmatch(r"/(.*)/([imx]*)", name)
    if not match:
        return name

    pattern, raw_flags = match.groups()
    flags = 0
    for flag in raw_flags:
        flags |= _REGEX_FLAGS[flag]
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise ConfigParseError(f"Invalid regular expression {name!r}: {e}") from e


def parse_location(location: str) -> tuple[Optional[str], Optional[int]]:
    """Split ``PATH:LINE``, ``PATH`` or ``LINE`` into ``(path, line)``."""
    if re.fullmatch(r"\d+", location):
        return None, int(location)
    match = re.fullmatch(r"(.*):(\d+)", location, re.DOTALL)
    if match:
        return match.group(1) or None, int(match.group(2))
    return location, None


def matches(pattern: NamePattern, text: Optional[str]) -> bool:
    """Regexes match anywhere in ``text``; literal strings must be equal."""
    if text is None:
        return False
    if isinstance(pattern, re.Pattern):
        return pattern.search(text) is not None
    return pattern == text


class Filter(ABC):
    """A predicate over test identities."""

    @abstractmethod
    def accepts(self, test: TestIdentity) -> bool:
        pass


@dataclass(frozen=True)
class NameFilter(Filter):
    """Matches the test method name, its local name, or ``Class#name``."""

    pattern: NamePattern
    negate: bool = False

    def accepts(self, test: TestIdentity) -> bool:
        return self._match(test) != self.negate

    def _match(self, test: TestIdentity) -> bool:
        if matches(self.pattern, test.method_name):
            return True
        if matches(self.pattern, test.local_name):
            return True
        if isinstance(self.pattern, str):
            return self.pattern in (
                f"{test.class_name}#{test.method_name}",
                f"{test.class_name}#{test.local_name}",
            )
        return False


@dataclass(frozen=True)
class TestCaseFilter(Filter):
    """Matches any class in the test's declaring class hierarchy.

    Each class is tried by its qualified name and by its module-qualified
    name, so both ``FooTest`` and ``tests.test_foo.FooTest`` select it.
    """

    __test__ = False

    pattern: NamePattern
    negate: bool = False

    def accepts(self, test: TestIdentity) -> bool:
        names = (*test.ancestors, *test.qualified_ancestors)
        matched = any(matches(self.pattern, name) for name in names)
        return matched != self.negate


@dataclass(frozen=True)
class LocationFilter(Filter):
    """Matches tests declared at a source path and/or line."""

    path: Optional[str] = None
    line: Optional[int] = None

    def __post_init__(self) -> None:
        if self.path is None and self.line is None:
            raise ValueError("Location filter needs a path or a line")

    def accepts(self, test: TestIdentity) -> bool:
        return test.defined_at(path=self.path, line=self.line)


@dataclass(frozen=True)
class AttributeFilter(Filter):
    """Matches tests whose attributes satisfy a boolean expression."""

    expression: str
    matcher: AttributeMatcher = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        try:
            matcher = AttributeMatcher(self.expression)
        except SyntaxError as e:
            raise ConfigParseError(
                f"Invalid attribute expression {self.expression!r}: {e.msg}"
            ) from e
        object.__setattr__(self, "matcher", matcher)

    def accepts(self, test: TestIdentity) -> bool:
        return self.matcher.match(test.attributes)


class PriorityDecision(Protocol):
    def need_to_run(self, test: TestIdentity) -> bool: ...


@dataclass(frozen=True, eq=False)
class PriorityFilter(Filter):
    """Selects tests by priority; only consulted when alone in a chain."""

    checker: PriorityDecision

    def accepts(self, test: TestIdentity) -> bool:
        return self.checker.need_to_run(test)


class FilterChain:
    """Conjunction of filters; an empty chain accepts everything."""

    def __init__(self, filters: Optional[list[Filter]] = None):
        self.filters: list[Filter] = list(filters or [])

    def add(self, test_filter: Filter) -> None:
        self.filters.append(test_filter)

    def remove(self, test_filter: Filter) -> None:
        self.filters = [f for f in self.filters if f != test_filter]

    def __contains__(self, test_filter: object) -> bool:
        return test_filter in self.filters

    def __len__(self) -> int:
        return len(self.filters)

    def __iter__(self) -> Iterator[Filter]:
        return iter(self.filters)

    def __repr__(self) -> str:
        return f"FilterChain({self.filters!r})"

    def accepts(self, test: TestIdentity) -> bool:
        active = self.filters
        if len(active) > 1:
            # Priority selection is exclusive with explicit filtering.
            active = [f for f in active if not isinstance(f, PriorityFilter)]
        return all(f.accepts(test) for f in active)
