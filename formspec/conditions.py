"""Condition predicates gating whether a field participates in validation.

A condition compares the raw value found at a referenced path with an
operand. Conditions read raw data only: they never see whether the
referenced field itself passed validation, or whether it was skipped by its
own condition.

Two spec forms are accepted:

Mapping form::

    {"path": "has_options", "equals": "1"}
    {"path": ".kind", "in": ["a", "b"]}
    {"all": [{...}, {...}]}, {"any": [...]}, {"not": {...}}

Compact string form::

    ".has_options == 1"
    "..kind in a,b && .count >= 2"

Usage:
    >>> cond = parse_condition({"path": "has_options", "equals": "1"})
    >>> cond.evaluate(lambda comparison: "1")
    True
"""

import re
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, Tuple

from formspec.paths import Path
from formspec.types import SYMBOLS, ConditionOperator
from formspec.values import is_empty, loose_equals, to_comparable_number


class Condition:
    """Base class for condition predicates."""

    def comparisons(self) -> Iterator["Comparison"]:
        """Yield every leaf comparison in declaration order."""
        raise NotImplementedError

    def evaluate(self, read: Callable[["Comparison"], Any]) -> bool:
        """Evaluate with ``read`` returning the raw value a comparison targets."""
        raise NotImplementedError

    def with_targets(self, resolve: Callable[[str], Path]) -> "Condition":
        """Return a copy whose comparisons carry resolved target templates."""
        raise NotImplementedError


@dataclass(frozen=True)
class Comparison(Condition):
    """Leaf predicate: ``<value at reference> <operator> <operand>``.

    Attributes:
        reference: Reference expression as written in the spec
        operator: Comparator
        operand: Right-hand side (a tuple for ``in``/``not_in``, a bool for ``empty``)
        target: Resolved spec template of the reference, set when the spec
            model is built
    """
    reference: str
    operator: ConditionOperator
    operand: Any = None
    target: Optional[Path] = None

    def comparisons(self) -> Iterator["Comparison"]:
        yield self

    def evaluate(self, read: Callable[["Comparison"], Any]) -> bool:
        return compare(read(self), self.operator, self.operand)

    def with_targets(self, resolve: Callable[[str], Path]) -> "Comparison":
        return replace(self, target=resolve(self.reference))


@dataclass(frozen=True)
class AllOf(Condition):
    conditions: Tuple[Condition, ...]

    def comparisons(self) -> Iterator[Comparison]:
        for condition in self.conditions:
            yield from condition.comparisons()

    def evaluate(self, read: Callable[[Comparison], Any]) -> bool:
        return all(c.evaluate(read) for c in self.conditions)

    def with_targets(self, resolve: Callable[[str], Path]) -> "AllOf":
        return AllOf(tuple(c.with_targets(resolve) for c in self.conditions))


@dataclass(frozen=True)
class AnyOf(Condition):
    conditions: Tuple[Condition, ...]

    def comparisons(self) -> Iterator[Comparison]:
        for condition in self.conditions:
            yield from condition.comparisons()

    def evaluate(self, read: Callable[[Comparison], Any]) -> bool:
        return any(c.evaluate(read) for c in self.conditions)

    def with_targets(self, resolve: Callable[[str], Path]) -> "AnyOf":
        return AnyOf(tuple(c.with_targets(resolve) for c in self.conditions))


@dataclass(frozen=True)
class Not(Condition):
    condition: Condition

    def comparisons(self) -> Iterator[Comparison]:
        yield from self.condition.comparisons()

    def evaluate(self, read: Callable[[Comparison], Any]) -> bool:
        return not self.condition.evaluate(read)

    def with_targets(self, resolve: Callable[[str], Path]) -> "Not":
        return Not(self.condition.with_targets(resolve))


def _members(value: Any) -> Sequence[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return (value,)


def compare(value: Any, operator: ConditionOperator, operand: Any) -> bool:
    """Apply ``operator`` to a raw value and an operand.

    Ordering operators are false unless both sides read as numbers.
    ``in``/``not_in`` on a multi-value field test for any shared member.
    """
    if operator is ConditionOperator.EQUALS:
        return loose_equals(value, operand)
    if operator is ConditionOperator.NOT_EQUALS:
        return not loose_equals(value, operand)
    if operator is ConditionOperator.IN:
        return any(loose_equals(v, o) for v in _members(value) for o in operand)
    if operator is ConditionOperator.NOT_IN:
        return not any(loose_equals(v, o) for v in _members(value) for o in operand)
    if operator is ConditionOperator.EMPTY:
        return is_empty(value) == bool(operand)

    left = to_comparable_number(value)
    right = to_comparable_number(operand)
    if left is None or right is None:
        return False
    if operator is ConditionOperator.GT:
        return left > right
    if operator is ConditionOperator.GTE:
        return left >= right
    if operator is ConditionOperator.LT:
        return left < right
    return left <= right


_OPERATOR_KEYS = {op.value: op for op in ConditionOperator}
_COMPOUND_KEYS = ("all", "any", "not")


def _operand_list(operand: Any) -> Tuple[Any, ...]:
    if isinstance(operand, str):
        return tuple(_parse_literal(part) for part in operand.split(","))
    if isinstance(operand, (list, tuple)):
        return tuple(operand)
    raise ValueError(f"'in' operand must be a list or a comma-separated string, got {operand!r}")


def _from_mapping(doc: Mapping[str, Any]) -> Condition:
    compound = [key for key in _COMPOUND_KEYS if key in doc]
    if compound:
        if len(doc) != 1:
            raise ValueError(f"'{compound[0]}' cannot be combined with other keys")
        key = compound[0]
        if key == "not":
            return Not(parse_condition(doc["not"]))
        members = doc[key]
        if not isinstance(members, (list, tuple)) or not members:
            raise ValueError(f"'{key}' expects a non-empty list of conditions")
        parsed = tuple(parse_condition(member) for member in members)
        return AllOf(parsed) if key == "all" else AnyOf(parsed)

    reference = doc.get("path")
    if not isinstance(reference, str) or not reference.strip():
        raise ValueError("condition requires a non-empty 'path'")

    operators = [key for key in doc if key != "path"]
    unknown = [key for key in operators if key not in _OPERATOR_KEYS]
    if unknown:
        raise ValueError(f"unknown condition operator(s): {', '.join(sorted(unknown))}")
    if len(operators) != 1:
        raise ValueError("condition requires exactly one operator")

    operator = _OPERATOR_KEYS[operators[0]]
    operand = doc[operators[0]]
    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        operand = _operand_list(operand)
    elif operator is ConditionOperator.EMPTY:
        operand = bool(operand)
    return Comparison(reference=reference, operator=operator, operand=operand)


_LITERAL_KEYWORDS = {"true": True, "false": False, "null": None}
_INT = re.compile(r"^[-+]?\d+$")
_FLOAT = re.compile(r"^[-+]?(\d+\.\d*|\d*\.\d+)$")
_COMPARISON = re.compile(r"^\s*(\S+)\s*(==|!=|>=|<=|>|<)\s*(.*?)\s*$")
_MEMBERSHIP = re.compile(r"^\s*(\S+)\s+(not\s+in|in)\s+(.+?)\s*$")


def _parse_literal(text: str) -> Any:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    if text in _LITERAL_KEYWORDS:
        return _LITERAL_KEYWORDS[text]
    if _INT.match(text):
        return int(text)
    if _FLOAT.match(text):
        return float(text)
    return text


def _split_outside_quotes(text: str, separator: str) -> List[str]:
    parts: List[str] = []
    quote: Optional[str] = None
    start = 0
    i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif text.startswith(separator, i):
            parts.append(text[start:i])
            i += len(separator)
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return parts


def _from_expression(text: str) -> Condition:
    alternatives = _split_outside_quotes(text, "||")
    if len(alternatives) > 1:
        return AnyOf(tuple(_from_expression(part) for part in alternatives))
    conjuncts = _split_outside_quotes(text, "&&")
    if len(conjuncts) > 1:
        return AllOf(tuple(_from_expression(part) for part in conjuncts))

    match = _MEMBERSHIP.match(text)
    if match:
        reference, keyword, operand = match.groups()
        operator = ConditionOperator.NOT_IN if keyword.startswith("not") else ConditionOperator.IN
        return Comparison(reference=reference, operator=operator, operand=_operand_list(operand))

    match = _COMPARISON.match(text)
    if match is None:
        raise ValueError(f"cannot parse condition expression {text.strip()!r}")
    reference, symbol, operand = match.groups()
    return Comparison(reference=reference, operator=SYMBOLS[symbol], operand=_parse_literal(operand))


def parse_condition(doc: Any) -> Condition:
    """Build a condition from its spec form.

    Raises:
        ValueError: If the document is not a valid condition
    """
    if isinstance(doc, Condition):
        return doc
    if isinstance(doc, str):
        return _from_expression(doc)
    if isinstance(doc, Mapping):
        return _from_mapping(doc)
    raise ValueError(f"condition must be a mapping or an expression string, got {type(doc).__name__}")


__all__ = [
    "Condition",
    "Comparison",
    "AllOf",
    "AnyOf",
    "Not",
    "compare",
    "parse_condition",
]
