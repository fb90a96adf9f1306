"""Storage for test outcome history."""

from testharness.storage.history import OutcomeHistory

__all__ = ["OutcomeHistory"]
