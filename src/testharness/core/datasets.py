"""Data sets for data-driven tests.

A data set is one of three kinds, decided by its shape when it is added:

- a callable is a generator, invoked lazily on each expansion and producing
  one of the two other kinds;
- a ``(name, values)`` tuple or list is a variable domain, combined with the
  other variable domains into a Cartesian product;
- a mapping is a value set, label to data, used verbatim.

Anything else is rejected with ``TypeError``.
"""

from collections.abc import Mapping, Set
from typing import Any, Callable, Iterator, Optional

DataSetEntry = tuple[Any, dict[str, Any]]


def _freeze(value: Any) -> Any:
    """Build a hashable stand-in for nested data set values."""
    if isinstance(value, Mapping):
        return frozenset((key, _freeze(item)) for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, Set):
        return frozenset(_freeze(item) for item in value)
    return value


def _is_variable_domain(data_set: Any) -> bool:
    return isinstance(data_set, (list, tuple))


class DataSets:
    """Ordered collection of data sets attached to a test."""

    def __init__(self):
        self._generators: list[DataSetEntry] = []
        self._variables: list[DataSetEntry] = []
        self._value_sets: list[DataSetEntry] = []

    def add(self, data_set: Any, options: Optional[dict[str, Any]] = None) -> None:
        """Register a data set, classifying it by shape."""
        options = dict(options or {})
        if callable(data_set):
            self._generators.append((data_set, options))
        elif _is_variable_domain(data_set):
            self._variables.append((self._as_domain(data_set), options))
        else:
            self._value_sets.append((self._as_value_set(data_set), options))

    def append(self, data_set: Any) -> "DataSets":
        self.add(data_set)
        return self

    def __len__(self) -> int:
        return len(self._generators) + len(self._variables) + len(self._value_sets)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return (
            f"DataSets(generators={len(self._generators)}, "
            f"variables={len(self._variables)}, value_sets={len(self._value_sets)})"
        )

    def entries(self) -> Iterator[DataSetEntry]:
        """Iterate over generators, then variable domains, then value sets."""
        yield from self._generators
        yield from self._variables
        yield from self._value_sets

    def keep(self) -> "DataSets":
        """Return a new collection holding only the data sets marked ``keep``."""
        kept = type(self)()
        for data_set, options in self.entries():
            if options.get("keep"):
                kept.add(data_set, options)
        return kept

    def expand(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(label, data)`` pairs for every binding.

        Generators are invoked once per expansion. Value sets come first in
        registration order, then the Cartesian product of the variables.
        """
        variables = list(self._variables)
        value_sets = list(self._value_sets)
        for generator, options in self._generators:
            data_set = generator()
            if _is_variable_domain(data_set):
                variables.append((self._as_domain(data_set), options))
            else:
                value_sets.append((self._as_value_set(data_set), options))

        for values, _options in value_sets:
            for label, data in values.items():
                yield label, data

        yield from self._build_matrix(variables)

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return self.expand()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataSets):
            return NotImplemented
        return (
            self._generators == other._generators
            and self._variables == other._variables
            and self._value_sets == other._value_sets
        )

    def __hash__(self) -> int:
        return hash(
            (
                _freeze(self._generators),
                _freeze(self._variables),
                _freeze(self._value_sets),
            )
        )

    @staticmethod
    def _as_value_set(data_set: Any) -> Mapping[Any, Any]:
        if not isinstance(data_set, Mapping):
            raise TypeError(
                f"Value data set must be a mapping of label to data, got: {data_set!r}"
            )
        return data_set

    @staticmethod
    def _as_domain(data_set: Any) -> tuple[Any, list[Any]]:
        if len(data_set) != 2:
            raise ValueError(
                f"Variable data set must be a (name, values) pair, got: {data_set!r}"
            )
        name, values = data_set
        return name, list(values)

    def _build_matrix(self, variables: list[DataSetEntry]) -> Iterator[tuple[str, Any]]:
        for cell_variables, data in self._build_raw_matrix(variables):
            label = ", ".join(
                f"{name}: {data[name]!r}" for name in sorted(cell_variables, key=str)
            )
            yield label, data

    def _build_raw_matrix(
        self, variables: list[DataSetEntry]
    ) -> list[tuple[list[Any], dict[Any, Any]]]:
        if not variables:
            return []

        ((name, patterns), _options), rest = variables[0], variables[1:]
        sub_matrix = self._build_raw_matrix(rest)
        if not patterns:
            return sub_matrix

        matrix = []
        for pattern in patterns:
            if not sub_matrix:
                matrix.append(([name], {name: pattern}))
                continue
            for sub_variables, sub_data in sub_matrix:
                matrix.append(([name, *sub_variables], {**sub_data, name: pattern}))
        return matrix


def build_data_sets(*args: Any, keep: bool = False, **options: Any) -> Callable[[DataSets], None]:
    """Translate ``data(...)`` decorator arguments into a data set registration.

    Accepted forms::

        data("label", value)
        data({"label": value, ...})
        data("name", [value, ...])   # variable domain
        data(callable)

    A list or tuple given as the second argument always declares a variable
    domain; use the mapping form to bind a sequence to a single label.
    """
    options = {"keep": keep, **options}

    if len(args) == 1:
        (data_set,) = args
    elif len(args) == 2:
        first, second = args
        if isinstance(second, (list, tuple)):
            data_set = (first, second)
        else:
            data_set = {first: second}
    else:
        raise TypeError(f"data() takes 1 or 2 positional arguments ({len(args)} given)")

    def register(data_sets: DataSets) -> None:
        data_sets.add(data_set, options)

    return register
