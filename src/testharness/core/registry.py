"""Registries of named discovery (collector) and reporting (runner) strategies."""

import inspect
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from testharness.core.orchestrator import Orchestrator

Factory = Callable[..., Any]


class StrategyRegistry:
    """Maps strategy ids to factories.

    Factories take either no argument or the orchestrator. Registries are
    filled at import time and treated as read-only while a run is going on.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._factories: dict[str, Factory] = {}

    def register(self, strategy_id: str, factory: Optional[Factory] = None) -> Any:
        """Register ``factory`` under ``strategy_id``, replacing any previous one.

        Without ``factory``, returns a decorator.
        """
        if factory is None:

            def decorator(function: Factory) -> Factory:
                self._factories[str(strategy_id)] = function
                return function

            return decorator

        self._factories[str(strategy_id)] = factory
        return factory

    def get(self, strategy_id: Optional[str]) -> Optional[Factory]:
        if strategy_id is None:
            return None
        return self._factories.get(str(strategy_id))

    def __contains__(self, strategy_id: object) -> bool:
        return strategy_id is not None and str(strategy_id) in self._factories

    def ids(self) -> list[str]:
        return sorted(self._factories)

    def build(self, strategy_id: Optional[str], orchestrator: "Orchestrator") -> Any:
        """Call the factory for ``strategy_id``.

        Raises:
            KeyError: If nothing is registered under ``strategy_id``
        """
        factory = self.get(strategy_id)
        if factory is None:
            raise KeyError(strategy_id)
        if _takes_no_arguments(factory):
            return factory()
        return factory(orchestrator)


def _takes_no_arguments(factory: Factory) -> bool:
    try:
        parameters = inspect.signature(factory).parameters.values()
    except (TypeError, ValueError):
        return False
    return not any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in parameters
    )


RUNNERS = StrategyRegistry("runner")
COLLECTORS = StrategyRegistry("collector")

# Hooks called with the orchestrator before arguments are processed.
PREPARE_HOOKS: list[Callable[["Orchestrator"], None]] = []

# Builders returning extra click options for the command line.
OPTION_BUILDERS: list[Callable[["Orchestrator"], Any]] = []


def register_runner(strategy_id: str, factory: Optional[Factory] = None) -> Any:
    return RUNNERS.register(strategy_id, factory)


def register_collector(strategy_id: str, factory: Optional[Factory] = None) -> Any:
    return COLLECTORS.register(strategy_id, factory)


def prepare(hook: Callable[["Orchestrator"], None]) -> Callable[["Orchestrator"], None]:
    PREPARE_HOOKS.append(hook)
    return hook


def setup_option(builder: Callable[["Orchestrator"], Any]) -> Callable[["Orchestrator"], Any]:
    OPTION_BUILDERS.append(builder)
    return builder
