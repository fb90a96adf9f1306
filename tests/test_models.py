"""Tests for data models."""

import random

import pytest

from conftest import make_item

from testharness.core.models import TestIdentity, TestOutcome, TestStatus, TestSuite


class TestTestIdentity:
    """Tests for TestIdentity."""

    def test_names(self):
        """Test full name and default local name."""
        identity = TestIdentity(class_name="FooTest", method_name="test_a")
        assert identity.full_name == "FooTest#test_a"
        assert identity.local_name == "test_a"
        assert identity.ancestors == ("FooTest",)

    def test_attributes_do_not_affect_equality(self):
        """Test that identities compare on name and location only."""
        first = TestIdentity("FooTest", "test_a", attributes={"slow": True})
        second = TestIdentity("FooTest", "test_a")
        assert first == second
        assert hash(first) == hash(second)

    def test_to_dict(self):
        """Test conversion to dictionary."""
        identity = TestIdentity("FooTest", "test_a", path="t.py", line=3, attributes={"x": 1})
        assert identity.to_dict() == {
            "class_name": "FooTest",
            "method_name": "test_a",
            "local_name": "test_a",
            "path": "t.py",
            "line": 3,
            "attributes": {"x": 1},
        }


class TestTestOutcome:
    """Tests for TestOutcome."""

    @pytest.mark.parametrize(
        "status,passed",
        [
            (TestStatus.PASSED, True),
            (TestStatus.SKIPPED, True),
            (TestStatus.FAILED, False),
            (TestStatus.ERROR, False),
        ],
    )
    def test_passed(self, status, passed):
        """Test which statuses count as passing."""
        outcome = TestOutcome(identity=TestIdentity("FooTest", "test_a"), status=status)
        assert outcome.passed is passed

    def test_to_dict(self):
        """Test conversion to dictionary."""
        outcome = TestOutcome(
            identity=TestIdentity("FooTest", "test_a"),
            status=TestStatus.FAILED,
            duration_ms=5,
            message="boom",
        )
        data = outcome.to_dict()
        assert data["name"] == "FooTest#test_a"
        assert data["status"] == "failed"
        assert data["message"] == "boom"


class TestTestSuite:
    """Tests for TestSuite ordering."""

    @pytest.fixture
    def suite(self):
        return TestSuite(
            "suite",
            [
                make_item("test_c", class_name="B", line=1),
                make_item("test_b", class_name="A", line=5),
                make_item("test_a", class_name="A", line=9),
                make_item("test_z", class_name="B", line=2),
            ],
        )

    def names(self, suite):
        return [identity.full_name for identity in suite.identities]

    def test_alphabetic_within_class(self, suite):
        """Test that classes keep their order and methods are sorted."""
        assert self.names(suite.ordered("alphabetic")) == [
            "B#test_c",
            "B#test_z",
            "A#test_a",
            "A#test_b",
        ]

    def test_defined(self, suite):
        """Test ordering by source line."""
        assert self.names(suite.ordered("defined")) == [
            "B#test_c",
            "B#test_z",
            "A#test_b",
            "A#test_a",
        ]

    def test_random_is_a_permutation(self, suite):
        """Test that random order keeps every test."""
        ordered = suite.ordered("random", random.Random(1))
        assert sorted(self.names(ordered)) == sorted(self.names(suite))
        assert ordered.name == "suite"

    def test_unknown_order(self, suite):
        """Test that unknown orders are rejected."""
        with pytest.raises(ValueError):
            suite.ordered("sideways")

    def test_empty(self):
        """Test the empty property."""
        assert TestSuite("empty").empty
        assert len(TestSuite("empty")) == 0
