"""Core test selection and execution functionality."""

from testharness.core.datasets import DataSets
from testharness.core.filters import FilterChain
from testharness.core.models import TestIdentity, TestOutcome, TestStatus, TestSuite

__all__ = ["DataSets", "FilterChain", "TestIdentity", "TestOutcome", "TestStatus", "TestSuite"]
