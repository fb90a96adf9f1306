"""Exceptions raised while configuring and running a test harness."""

from typing import Optional


class HarnessError(Exception):
    """Base class for harness errors."""

    pass


class ConfigParseError(HarnessError):
    """Raised for malformed command-line or configuration file input."""

    def __init__(self, message: str, usage: Optional[str] = None):
        super().__init__(message)
        self.usage = usage


class UnresolvedStrategyError(HarnessError):
    """Raised when a runner or collector id is not registered."""

    def __init__(self, kind: str, strategy_id: Optional[str]):
        super().__init__(f"No {kind} registered for id: {strategy_id!r}")
        self.kind = kind
        self.strategy_id = strategy_id


class DiscoveryFailure(HarnessError):
    """Raised when a collector reports that nothing could be found."""

    pass
