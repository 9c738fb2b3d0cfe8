"""Core type definitions for the form-spec validation engine.

This module defines the closed vocabularies shared by every component:
- FieldKind: The tagged variant over spec nodes (group, array, scalar kinds)
- ConditionOperator: Comparators available to conditions and ``required_if``
- RuleTarget: Node shapes a rule may be attached to

These enums are the contract between spec documents and the engine. Adding a
member here is a deliberate change to the spec language, not an extension
point; custom behavior belongs in the rule registry.
"""

from enum import Enum
from typing import FrozenSet


class FieldKind(str, Enum):
    """Spec node kinds.

    Exactly one of three shapes: ``GROUP`` (named children), ``ARRAY``
    (an item template repeated 0..N times), or a scalar leaf.
    """
    GROUP = "group"
    ARRAY = "array"
    TEXT = "text"
    TEXTAREA = "textarea"
    PASSWORD = "password"
    HIDDEN = "hidden"
    NUMBER = "number"
    EMAIL = "email"
    URL = "url"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BOOLEAN = "boolean"
    CHECKBOX = "checkbox"
    SELECT = "select"
    CHOICE = "choice"
    MULTICHOICE = "multichoice"
    FILE = "file"
    IMAGE = "image"
    RICH_TEXT = "rich-text"

    @property
    def is_container(self) -> bool:
        return self in (FieldKind.GROUP, FieldKind.ARRAY)


class RuleTarget(str, Enum):
    """Node shapes a rule may be declared on."""
    SCALAR = "scalar"
    GROUP = "group"
    ARRAY = "array"

    @classmethod
    def for_kind(cls, kind: FieldKind) -> "RuleTarget":
        if kind is FieldKind.GROUP:
            return cls.GROUP
        if kind is FieldKind.ARRAY:
            return cls.ARRAY
        return cls.SCALAR


ALL_TARGETS: FrozenSet[RuleTarget] = frozenset(RuleTarget)


class ConditionOperator(str, Enum):
    """Comparators for condition predicates.

    Mapping keys in spec documents use the enum values; the compact string
    form uses the symbols in ``SYMBOLS``.
    """
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EMPTY = "empty"


SYMBOLS = {
    "==": ConditionOperator.EQUALS,
    "!=": ConditionOperator.NOT_EQUALS,
    ">=": ConditionOperator.GTE,
    "<=": ConditionOperator.LTE,
    ">": ConditionOperator.GT,
    "<": ConditionOperator.LT,
    "in": ConditionOperator.IN,
}


__all__ = [
    "FieldKind",
    "RuleTarget",
    "ALL_TARGETS",
    "ConditionOperator",
    "SYMBOLS",
]
