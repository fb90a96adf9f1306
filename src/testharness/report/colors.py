"""Named color schemes used by reporting runners."""

from collections.abc import Mapping
from typing import Optional

from rich.style import Style

from testharness.core.models import TestStatus


class ColorScheme:
    """Maps report elements (test statuses, ``summary``) to rich styles.

    Schemes live in a process-wide table, filled before runs start.
    """

    DEFAULT_ID = "default"

    _schemes: dict[str, "ColorScheme"] = {}

    def __init__(self, definitions: Mapping[str, str]):
        self.definitions = dict(definitions)

    def __getitem__(self, element: str) -> Style:
        style = self.definitions.get(element)
        if style is None:
            return Style.null()
        return Style.parse(style)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColorScheme):
            return NotImplemented
        return self.definitions == other.definitions

    def __repr__(self) -> str:
        return f"ColorScheme({self.definitions!r})"

    def style_for(self, status: TestStatus) -> Style:
        return self[status.value]

    @classmethod
    def register(cls, scheme_id: str, scheme: "ColorScheme | Mapping[str, str]") -> "ColorScheme":
        if not isinstance(scheme, ColorScheme):
            scheme = cls(scheme)
        cls._schemes[str(scheme_id)] = scheme
        return scheme

    @classmethod
    def get(cls, scheme_id: str) -> Optional["ColorScheme"]:
        return cls._schemes.get(str(scheme_id))

    @classmethod
    def ids(cls) -> list[str]:
        return sorted(cls._schemes)

    @classmethod
    def default(cls) -> "ColorScheme":
        return cls._schemes[cls.DEFAULT_ID]


ColorScheme.register(
    ColorScheme.DEFAULT_ID,
    {
        "passed": "green",
        "failed": "bold red",
        "error": "bold yellow",
        "skipped": "cyan",
        "summary": "bold",
    },
)
