"""Configuration management for testharness.

Settings come from, in increasing precedence: the user-global structured
config (``~/.testharness.yml``), the local structured config
(``./testharness.yml``), the local plain-text argument file
(``./.testharness``), an explicit ``--config=FILE`` and the command line.
"""

import shlex
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from rich.errors import StyleSyntaxError
from rich.style import Style

from testharness.core.executor import default_n_workers
from testharness.core.models import AVAILABLE_ORDERS
from testharness.errors import ConfigParseError
from testharness.priority.checker import DEFAULT_PRIORITY, PRIORITY_LEVELS

CONFIG_FILE = "testharness.yml"
GLOBAL_CONFIG_FILE = "~/.testharness.yml"
PLAIN_TEXT_CONFIG_FILE = ".testharness"


class HarnessSettings(BaseModel):
    """Process-wide defaults shared by every run in this process."""

    model_config = ConfigDict(validate_assignment=True)

    default_runner: Optional[str] = Field(default=None, description="Runner used when none is selected")
    need_auto_run: bool = Field(default=True, description="Cleared once a run has happened")
    test_order: str = Field(default="alphabetic", description="Order of tests inside a test class")
    default_priority: str = Field(default=DEFAULT_PRIORITY, description="Priority of tests without one")
    n_workers: int = Field(default_factory=default_n_workers, description="Parallel worker count")
    max_diff_target_string_size: Optional[int] = Field(
        default=None, description="maxDiff applied to unittest cases"
    )
    debug_on_failure: bool = Field(default=False, description="Open pdb on test failures")
    priority_history_path: str = Field(
        default_factory=lambda: str(Path(tempfile.gettempdir()) / "testharness" / "priority.db"),
        description="SQLite file holding outcomes for priority mode",
    )

    @field_validator("n_workers")
    @classmethod
    def validate_n_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("n_workers must be at least 1")
        return v

    @field_validator("test_order")
    @classmethod
    def validate_test_order(cls, v: str) -> str:
        if v not in AVAILABLE_ORDERS:
            raise ValueError(f"Order must be one of: {AVAILABLE_ORDERS}")
        return v

    @field_validator("default_priority")
    @classmethod
    def validate_default_priority(cls, v: str) -> str:
        if v not in PRIORITY_LEVELS:
            raise ValueError(f"Priority must be one of: {tuple(PRIORITY_LEVELS)}")
        return v


class StructuredConfig(BaseModel):
    """Contents of a YAML configuration file.

    Besides the named fields, ``<runner_id>_options`` mappings hold options
    passed to that runner.
    """

    model_config = ConfigDict(extra="allow")

    runner: Optional[str] = None
    collector: Optional[str] = None
    color_schemes: dict[str, dict[str, str]] = Field(default_factory=dict)

    @field_validator("color_schemes")
    @classmethod
    def validate_color_schemes(cls, v: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
        for name, definition in v.items():
            for element, style in definition.items():
                try:
                    Style.parse(style)
                except StyleSyntaxError as e:
                    raise ValueError(f"Invalid style for {name}.{element}: {e}") from e
        return v

    @model_validator(mode="after")
    def validate_runner_options(self) -> "StructuredConfig":
        for key, value in (self.model_extra or {}).items():
            if key.endswith("_options") and not isinstance(value, dict):
                raise ValueError(f"{key} must be a mapping")
        return self

    def runner_options(self, runner_id: Optional[str]) -> dict[str, Any]:
        """Get the options block for ``runner_id``."""
        if runner_id is None:
            return {}
        return dict((self.model_extra or {}).get(f"{runner_id}_options") or {})


def load_structured_config(path: Path | str) -> StructuredConfig:
    """Load a YAML configuration file.

    Raises:
        ConfigParseError: If the file cannot be read, is not valid YAML, or
            does not describe a valid configuration
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigParseError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigParseError(
            f"Configuration must be a YAML mapping, got {type(data).__name__}: {path}"
        )

    try:
        return StructuredConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid configuration in {path}: {e}") from e


def load_plain_text_config(path: Path | str) -> list[str]:
    """Read command-line arguments from a plain-text file, one invocation per line."""
    path = Path(path)
    arguments: list[str] = []
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line:
            continue
        try:
            arguments.extend(shlex.split(line))
        except ValueError as e:
            raise ConfigParseError(f"{path}:{number}: {e}") from e
    return arguments


def global_config_path() -> Optional[Path]:
    """Path of the user-global config file, or None when home is unknown."""
    try:
        return Path(GLOBAL_CONFIG_FILE).expanduser()
    except RuntimeError:
        return None
