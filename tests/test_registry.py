"""Tests for strategy registries."""

import pytest

from testharness.core.registry import COLLECTORS, RUNNERS, StrategyRegistry


class TestStrategyRegistry:
    """Tests for StrategyRegistry."""

    def test_register_and_build(self):
        """Test building with and without the orchestrator argument."""
        registry = StrategyRegistry("runner")
        registry.register("plain", lambda: "plain")
        registry.register("aware", lambda orchestrator: ("aware", orchestrator))

        assert registry.build("plain", "orch") == "plain"
        assert registry.build("aware", "orch") == ("aware", "orch")
        assert registry.ids() == ["aware", "plain"]

    def test_decorator(self):
        """Test registering with the decorator form."""
        registry = StrategyRegistry("collector")

        @registry.register("mine")
        def collect(orchestrator):
            return orchestrator

        assert "mine" in registry
        assert registry.get("mine") is collect

    def test_reregistering_replaces(self):
        """Test that the last registration wins."""
        registry = StrategyRegistry("runner")
        registry.register("x", lambda: 1)
        registry.register("x", lambda: 2)
        assert registry.build("x", None) == 2

    def test_unknown_id(self):
        """Test that unknown or missing ids cannot be built."""
        registry = StrategyRegistry("runner")
        assert None not in registry
        assert registry.get(None) is None
        with pytest.raises(KeyError):
            registry.build("missing", None)

    def test_builtin_strategies(self):
        """Test that the built-in runners and collectors are registered."""
        import testharness.core.orchestrator  # noqa: F401

        assert {"console", "emacs", "xml"} <= set(RUNNERS.ids())
        assert {"descendant", "load"} <= set(COLLECTORS.ids())
