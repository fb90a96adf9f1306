"""Test attributes, the decorators that set them, and the attribute matcher."""

import ast
import operator
from collections.abc import Mapping
from typing import Any, Callable, Optional

from testharness.core.datasets import DataSets, build_data_sets

ATTRIBUTES_ATTR = "__testharness_attributes__"
DATA_SETS_ATTR = "__testharness_data_sets__"


def attribute(name: str, value: Any = True) -> Callable:
    """Attach a named attribute to a test method or test class."""

    def decorator(target: Callable) -> Callable:
        attributes = dict(getattr(target, ATTRIBUTES_ATTR, {}))
        attributes[name] = value
        setattr(target, ATTRIBUTES_ATTR, attributes)
        return target

    return decorator


def priority(level: str) -> Callable:
    """Declare the priority used by priority mode."""
    return attribute("priority", level)


def data(*args: Any, keep: bool = False, **options: Any) -> Callable:
    """Parameterize a test method with a data set.

    Stacked decorators add data sets in source order, top first.
    """
    register = build_data_sets(*args, keep=keep, **options)

    def decorator(function: Callable) -> Callable:
        # Decorators apply bottom-up, so this one goes before those already set.
        data_sets = DataSets()
        register(data_sets)
        for data_set, set_options in getattr(function, DATA_SETS_ATTR, DataSets()).entries():
            data_sets.add(data_set, set_options)
        setattr(function, DATA_SETS_ATTR, data_sets)
        return function

    return decorator


def get_attributes(*targets: Any) -> dict[str, Any]:
    """Merge attributes from targets, later targets winning."""
    merged: dict[str, Any] = {}
    for target in targets:
        merged.update(getattr(target, ATTRIBUTES_ATTR, {}))
    return merged


def get_data_sets(function: Any) -> Optional[DataSets]:
    return getattr(function, DATA_SETS_ATTR, None)


class UnknownAttributeError(LookupError):
    """Raised while evaluating an expression that names a missing attribute."""

    pass


_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


class AttributeMatcher:
    """Evaluates a boolean expression against test attributes.

    Expressions use Python syntax restricted to boolean operators, ``not``,
    comparisons, literals and attribute names, e.g.::

        not slow
        tag == "important" and not slow
        bug in [1, 2]
    """

    def __init__(self, expression: str):
        """Parse the expression.

        Raises:
            SyntaxError: If the expression is not valid or uses unsupported syntax
        """
        self.expression = expression
        self._tree = ast.parse(expression.strip(), mode="eval")
        for node in ast.walk(self._tree):
            if not isinstance(node, self._ALLOWED_NODES):
                raise SyntaxError(
                    f"Unsupported syntax in attribute expression: {type(node).__name__}"
                )

    _ALLOWED_NODES = (
        ast.Expression,
        ast.BoolOp,
        ast.And,
        ast.Or,
        ast.UnaryOp,
        ast.Not,
        ast.USub,
        ast.Compare,
        ast.Name,
        ast.Load,
        ast.Constant,
        ast.List,
        ast.Tuple,
        *_COMPARISONS,
    )

    def match(self, attributes: Mapping[str, Any]) -> bool:
        """Evaluate against ``attributes``; unknown names or type errors reject."""
        try:
            return bool(self._evaluate(self._tree.body, attributes))
        except (UnknownAttributeError, TypeError):
            return False

    def _evaluate(self, node: ast.AST, attributes: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in attributes:
                raise UnknownAttributeError(node.id)
            return attributes[node.id]
        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._evaluate(element, attributes) for element in node.elts]
        if isinstance(node, ast.UnaryOp):
            operand = self._evaluate(node.operand, attributes)
            if isinstance(node.op, ast.Not):
                return not operand
            return -operand
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self._evaluate(value, attributes) for value in node.values)
            return any(self._evaluate(value, attributes) for value in node.values)
        if isinstance(node, ast.Compare):
            left = self._evaluate(node.left, attributes)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._evaluate(comparator, attributes)
                if not _COMPARISONS[type(op)](left, right):
                    return False
                left = right
            return True
        raise SyntaxError(f"Unsupported syntax in attribute expression: {type(node).__name__}")
