"""Priority-based test selection."""

from testharness.priority.checker import (
    DEFAULT_PRIORITY,
    PRIORITY_LEVELS,
    PriorityChecker,
    PriorityResultListener,
)

__all__ = ["DEFAULT_PRIORITY", "PRIORITY_LEVELS", "PriorityChecker", "PriorityResultListener"]
