"""Command-line entry point for TestHarness."""

import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler

from testharness.core.orchestrator import Orchestrator

LOG_LEVEL_ENV = "TESTHARNESS_LOG_LEVEL"


def configure_logging(level: str | None = None) -> None:
    """Send package logs to stderr through rich.

    Args:
        level: Log level name (default: $TESTHARNESS_LOG_LEVEL or WARNING)
    """
    level = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("testharness")
    logger.handlers = [handler]
    logger.setLevel(getattr(logging, level, logging.WARNING))
    logger.propagate = False


def main() -> None:
    """Run the tests named on the command line and exit with their verdict."""
    configure_logging()
    success = Orchestrator.main(force_standalone=True)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
