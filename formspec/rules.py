"""Rule registry and built-in validation rules.

The registry is the one open extension point of the engine: a table from rule
name to a pure check function ``(value, arg, context) -> bool | RuleOutcome``.
Field kinds are a closed set; new validation behavior is added by registering
rules, never by subclassing.

Evaluation policy (shared by every implementation of the engine):

- Only presence rules (``required``, ``required_if``) look at empty values.
  Every other rule is skipped, and passes, when the value is absent, null,
  blank text, or an empty collection. Use ``required`` to mandate presence.
- Cross-field rules read the raw value at the referenced path, regardless of
  whether that field passed, failed, or was skipped by its own condition.

Usage:
    >>> registry = RuleRegistry.with_builtins()
    >>> @registry.register("even", default_message="{field} must be even")
    ... def check_even(value, arg, context):
    ...     return int(value) % 2 == 0
    >>> "even" in registry
    True
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)
from urllib.parse import urlparse

from dateutil import parser as date_parser

from formspec.conditions import Condition, parse_condition
from formspec.errors import SpecError
from formspec.paths import MISSING, Path, bind, get_value, parse_path
from formspec.types import ALL_TARGETS, FieldKind, RuleTarget
from formspec.values import char_length, is_empty, to_number, to_text

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "{field} is invalid"


@dataclass(frozen=True)
class RuleOutcome:
    """Result of evaluating one rule against one value.

    Attributes:
        ok: Whether the value satisfies the rule
        message_key: Key used to look up the message template; defaults to
            the rule name, rules with several failure modes use ``name.variant``
        params: Extra values available to the message template
        skipped: True when the rule was not evaluated because the value is empty
    """
    ok: bool
    message_key: Optional[str] = None
    params: Mapping[str, Any] = field(default_factory=dict)
    skipped: bool = False

    @classmethod
    def failed(cls, message_key: Optional[str] = None, **params: Any) -> "RuleOutcome":
        return cls(ok=False, message_key=message_key, params=params)


PASSED = RuleOutcome(ok=True)

RuleCheck = Callable[[Any, Any, "RuleContext"], Union[bool, RuleOutcome]]


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may consult besides its value and argument.

    Attributes:
        path: Concrete path of the field being validated
        node: The spec node being validated
        data: Root of the data tree (read-only)
        references: Reference expression -> resolved spec template, for the
            path arguments of this rule
        language: Language the result is being produced for
    """
    path: Path
    node: Any
    data: Any
    references: Mapping[str, Path] = field(default_factory=dict)
    language: Optional[str] = None

    @property
    def kind(self) -> Optional[FieldKind]:
        return getattr(self.node, "kind", None)

    def lookup(self, expression: str) -> Any:
        """Raw value at a referenced path, bound to this field's array indices.

        Expressions that were not resolved when the spec was built are read
        as concrete absolute paths. Anything unreadable is ``MISSING``.
        """
        template = self.references.get(expression)
        if template is None:
            if expression.startswith("."):
                return MISSING
            try:
                template = parse_path(expression)
            except ValueError:
                return MISSING
        concrete = bind(template, self.path)
        if concrete is None:
            return MISSING
        return get_value(self.data, concrete)


@dataclass(frozen=True)
class RuleDefinition:
    """A registered rule.

    Attributes:
        name: Rule name as used in spec ``rules`` mappings
        check: The check function
        default_message: English template used when no translation is found
        messages: Templates for ``name.variant`` message keys
        presence: Evaluate even when the value is empty
        targets: Node shapes the rule may be declared on
        prepare: Converts the spec argument once, when the spec is built;
            raising ValueError/TypeError makes the spec invalid
        references: Extracts the path expressions from a prepared argument
    """
    name: str
    check: RuleCheck
    default_message: str = GENERIC_MESSAGE
    messages: Mapping[str, str] = field(default_factory=dict)
    presence: bool = False
    targets: FrozenSet[RuleTarget] = ALL_TARGETS
    prepare: Optional[Callable[[Any], Any]] = None
    references: Optional[Callable[[Any], Iterable[str]]] = None

    def message_for(self, message_key: str) -> str:
        return self.messages.get(message_key, self.default_message)

    def prepare_arg(self, arg: Any) -> Any:
        return self.prepare(arg) if self.prepare is not None else arg

    def reference_expressions(self, prepared_arg: Any) -> List[str]:
        if self.references is None:
            return []
        return list(self.references(prepared_arg))


class RuleRegistry:
    """Name -> rule table.

    Examples:
        >>> registry = RuleRegistry.with_builtins()
        >>> registry.evaluate("required", "", True, RuleContext(path=("name",), node=None, data={})).ok
        False
        >>> registry.evaluate("email", None, True, RuleContext(path=("email",), node=None, data={})).skipped
        True
    """

    def __init__(self) -> None:
        self._rules: Dict[str, RuleDefinition] = {}

    @classmethod
    def with_builtins(cls) -> "RuleRegistry":
        registry = cls()
        for definition in BUILTIN_RULES:
            registry.add(definition)
        return registry

    def add(self, definition: RuleDefinition) -> None:
        if definition.name in self._rules:
            logger.debug("Replacing rule %r", definition.name)
        self._rules[definition.name] = definition

    def register(
        self,
        name: str,
        check: Optional[RuleCheck] = None,
        *,
        default_message: str = GENERIC_MESSAGE,
        messages: Optional[Mapping[str, str]] = None,
        presence: bool = False,
        targets: Optional[Iterable[RuleTarget]] = None,
        prepare: Optional[Callable[[Any], Any]] = None,
        references: Optional[Callable[[Any], Iterable[str]]] = None,
    ) -> Any:
        """Register a rule; usable directly or as a decorator.

        Re-registering a name replaces the previous definition, built-ins
        included.
        """
        def decorator(fn: RuleCheck) -> RuleCheck:
            self.add(RuleDefinition(
                name=name,
                check=fn,
                default_message=default_message,
                messages=dict(messages or {}),
                presence=presence,
                targets=frozenset(targets) if targets is not None else ALL_TARGETS,
                prepare=prepare,
                references=references,
            ))
            return fn

        if check is not None:
            decorator(check)
            return check
        return decorator

    def unregister(self, name: str) -> None:
        self._rules.pop(name, None)

    def get(self, name: str) -> RuleDefinition:
        try:
            return self._rules[name]
        except KeyError:
            raise SpecError(f"unknown rule '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def names(self) -> List[str]:
        return sorted(self._rules)

    def copy(self) -> "RuleRegistry":
        registry = RuleRegistry()
        registry._rules = dict(self._rules)
        return registry

    def evaluate(self, name: str, value: Any, arg: Any, context: RuleContext) -> RuleOutcome:
        """Evaluate rule ``name``; ``arg`` must already be prepared.

        Raises:
            SpecError: If no rule is registered under ``name``
        """
        definition = self.get(name)
        if not definition.presence and is_empty(value):
            return RuleOutcome(ok=True, skipped=True)

        result = definition.check(value, arg, context)
        if isinstance(result, RuleOutcome):
            if result.ok or result.message_key is not None:
                return result
            return replace(result, message_key=name)
        if result:
            return PASSED
        return RuleOutcome(ok=False, message_key=name)


# ---------------------------------------------------------------------------
# Argument preparation
# ---------------------------------------------------------------------------

def _number_arg(arg: Any) -> float:
    number = to_number(arg)
    if number is None:
        raise ValueError(f"expected a number, got {arg!r}")
    return number


def _count_arg(arg: Any) -> int:
    number = _number_arg(arg)
    if number < 0 or not number.is_integer():
        raise ValueError(f"expected a non-negative integer, got {arg!r}")
    return int(number)


def _pair_arg(convert: Callable[[Any], Any]) -> Callable[[Any], Tuple[Any, Any]]:
    def prepare(arg: Any) -> Tuple[Any, Any]:
        if isinstance(arg, str):
            arg = arg.split(",")
        if not isinstance(arg, (list, tuple)) or len(arg) != 2:
            raise ValueError(f"expected [min, max], got {arg!r}")
        return convert(arg[0]), convert(arg[1])
    return prepare


def _list_arg(arg: Any) -> Tuple[Any, ...]:
    if isinstance(arg, str):
        return tuple(part.strip() for part in arg.split(","))
    if isinstance(arg, (list, tuple)):
        return tuple(arg)
    raise ValueError(f"expected a list or a comma-separated string, got {arg!r}")


def _reference_arg(arg: Any) -> str:
    if not isinstance(arg, str) or not arg.strip():
        raise ValueError(f"expected a field path, got {arg!r}")
    return arg


def _length_arg(arg: Any) -> Tuple[Optional[int], Optional[int]]:
    if isinstance(arg, Mapping):
        unknown = set(arg) - {"min", "max"}
        if unknown:
            raise ValueError(f"unknown length bound(s): {', '.join(sorted(unknown))}")
        low = _count_arg(arg["min"]) if arg.get("min") is not None else None
        high = _count_arg(arg["max"]) if arg.get("max") is not None else None
        return low, high
    if isinstance(arg, (list, tuple)):
        low, high = _pair_arg(_count_arg)(arg)
        return low, high
    exact = _count_arg(arg)
    return exact, exact


def _pattern_arg(arg: Any) -> "re.Pattern[str]":
    if not isinstance(arg, str):
        raise ValueError(f"expected a regular expression, got {arg!r}")
    try:
        return re.compile(arg)
    except re.error as e:
        raise ValueError(f"invalid regular expression {arg!r}: {e}") from e


def _not_equal_references(arg: Any) -> List[str]:
    if isinstance(arg, str) and arg.startswith("."):
        return [arg]
    return []


def _single_reference(arg: str) -> List[str]:
    return [arg]


def _condition_references(condition: Condition) -> List[str]:
    return [comparison.reference for comparison in condition.comparisons()]


# ---------------------------------------------------------------------------
# Built-in checks
# ---------------------------------------------------------------------------

BUILTIN_RULES: List[RuleDefinition] = []

_SCALAR = frozenset({RuleTarget.SCALAR})
_COLLECTION = frozenset({RuleTarget.SCALAR, RuleTarget.ARRAY})


def _builtin(name: str, default_message: str, **options: Any) -> Callable[[RuleCheck], RuleCheck]:
    options.setdefault("targets", _SCALAR)

    def decorator(fn: RuleCheck) -> RuleCheck:
        BUILTIN_RULES.append(RuleDefinition(name=name, check=fn, default_message=default_message, **options))
        return fn
    return decorator


def _count(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return len(value)
    return 1


@_builtin("required", "{field} is required", presence=True, targets=ALL_TARGETS)
def check_required(value: Any, arg: Any, context: RuleContext) -> bool:
    if not arg:
        return True
    return not is_empty(value)


@_builtin(
    "required_if",
    "{field} is required",
    presence=True,
    targets=ALL_TARGETS,
    prepare=parse_condition,
    references=_condition_references,
)
def check_required_if(value: Any, condition: Condition, context: RuleContext) -> bool:
    if not condition.evaluate(lambda comparison: context.lookup(comparison.reference)):
        return True
    return not is_empty(value)


_EMAIL = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+"
)


@_builtin("email", "Please enter a valid email address")
def check_email(value: Any, arg: Any, context: RuleContext) -> bool:
    if not arg:
        return True
    text = to_text(value)
    if not _EMAIL.fullmatch(text):
        return False
    local = text.split("@", 1)[0]
    return not (local.startswith(".") or local.endswith(".") or ".." in local)


def _measure(value: Any, context: RuleContext) -> Tuple[Optional[float], str]:
    """Magnitude compared by min/max, and the message variant describing it."""
    if context.kind is FieldKind.NUMBER:
        return to_number(value), "value"
    if isinstance(value, str):
        return float(len(value)), "length"
    if isinstance(value, (list, tuple)):
        return float(len(value)), "count"
    return to_number(value), "value"


@_builtin(
    "min",
    "Please enter a value greater than or equal to {param}",
    messages={
        "min.length": "Please enter at least {param} characters",
        "min.count": "Please select at least {param} items",
    },
    prepare=_number_arg,
)
def check_min(value: Any, bound: float, context: RuleContext) -> RuleOutcome:
    measured, variant = _measure(value, context)
    if measured is None or measured >= bound:
        return PASSED
    return RuleOutcome.failed("min" if variant == "value" else f"min.{variant}")


@_builtin(
    "max",
    "Please enter a value less than or equal to {param}",
    messages={
        "max.length": "Please enter no more than {param} characters",
        "max.count": "Please select no more than {param} items",
    },
    prepare=_number_arg,
)
def check_max(value: Any, bound: float, context: RuleContext) -> RuleOutcome:
    measured, variant = _measure(value, context)
    if measured is None or measured <= bound:
        return PASSED
    return RuleOutcome.failed("max" if variant == "value" else f"max.{variant}")


@_builtin("pattern", "Please enter a value matching the required format", prepare=_pattern_arg)
def check_pattern(value: Any, pattern: "re.Pattern[str]", context: RuleContext) -> bool:
    return pattern.fullmatch(to_text(value)) is not None


@_builtin(
    "match",
    "Please enter the same value again",
    prepare=_reference_arg,
    references=_single_reference,
)
def check_match(value: Any, reference: str, context: RuleContext) -> bool:
    return to_text(value) == to_text(context.lookup(reference))


@_builtin(
    "equalTo",
    "Please enter the same value again",
    prepare=_reference_arg,
    references=_single_reference,
)
def check_equal_to(value: Any, reference: str, context: RuleContext) -> bool:
    return check_match(value, reference, context)


@_builtin(
    "length",
    "Please provide between {min} and {max} items",
    messages={
        "length.min": "Please select at least {min} items",
        "length.max": "Please select no more than {max} items",
    },
    targets=_COLLECTION,
    prepare=_length_arg,
)
def check_length(value: Any, bounds: Tuple[Optional[int], Optional[int]], context: RuleContext) -> RuleOutcome:
    low, high = bounds
    count = _count(value)
    if low is not None and count < low:
        key = "length" if high is not None and low != high else "length.min"
        return RuleOutcome.failed(key, min=low, max=high, count=count)
    if high is not None and count > high:
        key = "length" if low is not None and low != high else "length.max"
        return RuleOutcome.failed(key, min=low, max=high, count=count)
    return PASSED


def _text_length(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return len(value)
    return char_length(value)


@_builtin("minlength", "Please enter at least {param} characters", prepare=_count_arg)
def check_minlength(value: Any, bound: int, context: RuleContext) -> bool:
    return _text_length(value) >= bound


@_builtin("maxlength", "Please enter no more than {param} characters", prepare=_count_arg)
def check_maxlength(value: Any, bound: int, context: RuleContext) -> bool:
    return _text_length(value) <= bound


@_builtin(
    "rangelength",
    "Please enter a value between {min} and {max} characters",
    prepare=_pair_arg(_count_arg),
)
def check_rangelength(value: Any, bounds: Tuple[int, int], context: RuleContext) -> RuleOutcome:
    low, high = bounds
    if low <= _text_length(value) <= high:
        return PASSED
    return RuleOutcome.failed(min=low, max=high)


@_builtin(
    "range",
    "Please enter a value between {min} and {max}",
    messages={"range.number": "Please enter a valid number"},
    prepare=_pair_arg(_number_arg),
)
def check_range(value: Any, bounds: Tuple[float, float], context: RuleContext) -> RuleOutcome:
    low, high = bounds
    number = to_number(value)
    if number is None:
        return RuleOutcome.failed("range.number", min=to_text(low), max=to_text(high))
    if low <= number <= high:
        return PASSED
    return RuleOutcome.failed(min=to_text(low), max=to_text(high))


@_builtin("number", "Please enter a valid number")
def check_number(value: Any, arg: Any, context: RuleContext) -> bool:
    if arg is False:
        return True
    return to_number(value) is not None


@_builtin("digits", "Please enter only digits")
def check_digits(value: Any, arg: Any, context: RuleContext) -> bool:
    if arg is False:
        return True
    return re.fullmatch(r"[0-9]+", to_text(value)) is not None


@_builtin("in", "Please select a valid option", targets=_COLLECTION, prepare=_list_arg)
def check_in(value: Any, allowed: Sequence[Any], context: RuleContext) -> bool:
    allowed_text = {to_text(option) for option in allowed}
    members = value if isinstance(value, (list, tuple)) else (value,)
    return all(to_text(member) in allowed_text for member in members)


@_builtin(
    "notEqual",
    "Please enter a different value",
    references=_not_equal_references,
)
def check_not_equal(value: Any, arg: Any, context: RuleContext) -> bool:
    if isinstance(arg, str) and arg.startswith("."):
        other = context.lookup(arg)
    else:
        other = arg
    return to_text(value) != to_text(other)


_URL_SCHEMES = ("http", "https", "ftp")


@_builtin("url", "Please enter a valid URL")
def check_url(value: Any, arg: Any, context: RuleContext) -> bool:
    if not arg:
        return True
    try:
        parsed = urlparse(to_text(value).strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in _URL_SCHEMES and bool(parsed.netloc)


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a date/datetime string with python-dateutil, or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return None


_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


@_builtin("date", "Please enter a valid date")
def check_date(value: Any, arg: Any, context: RuleContext) -> bool:
    if not arg:
        return True
    return parse_date(to_text(value)) is not None


@_builtin("dateISO", "Please enter a valid date in ISO format (YYYY-MM-DD)")
def check_date_iso(value: Any, arg: Any, context: RuleContext) -> bool:
    if not arg:
        return True
    text = to_text(value)
    if not _ISO_DATE.fullmatch(text):
        return False
    try:
        date_parser.isoparse(text)
    except ValueError:
        return False
    return True


def _comparable(moment: datetime, other: datetime) -> Tuple[datetime, datetime]:
    if (moment.tzinfo is None) != (other.tzinfo is None):
        return moment.replace(tzinfo=None), other.replace(tzinfo=None)
    return moment, other


@_builtin(
    "enddate",
    "End date must be after the start date",
    prepare=_reference_arg,
    references=_single_reference,
)
def check_enddate(value: Any, reference: str, context: RuleContext) -> bool:
    end = parse_date(to_text(value))
    if end is None:
        return True
    start_value = context.lookup(reference)
    if is_empty(start_value):
        return True
    start = parse_date(to_text(start_value))
    if start is None:
        return True
    end, start = _comparable(end, start)
    return end >= start


@_builtin("mincount", "Please select at least {param} items", targets=_COLLECTION, prepare=_count_arg)
def check_mincount(value: Any, bound: int, context: RuleContext) -> bool:
    if not isinstance(value, (list, tuple)):
        return False
    return len(value) >= bound


@_builtin("maxcount", "Please select no more than {param} items", targets=_COLLECTION, prepare=_count_arg)
def check_maxcount(value: Any, bound: int, context: RuleContext) -> bool:
    return _count(value) <= bound


@_builtin("unique", "Duplicate values are not allowed", targets=_COLLECTION)
def check_unique(value: Any, arg: Any, context: RuleContext) -> bool:
    if not arg or not isinstance(value, (list, tuple)):
        return True
    seen = set()
    for item in value:
        key = to_text(item)
        if key in seen:
            return False
        seen.add(key)
    return True


def _accepts(name: str, accepted: Sequence[str]) -> bool:
    name = name.strip().lower()
    if "/" in name:
        for pattern in accepted:
            if pattern == "*/*" or pattern == name:
                return True
            if pattern.endswith("/*") and name.startswith(pattern[:-1]):
                return True
        return False
    if "." not in name:
        return False
    extension = name.rsplit(".", 1)[1]
    return any(pattern.startswith(".") and pattern[1:] == extension for pattern in accepted)


def _accept_arg(arg: Any) -> Tuple[str, ...]:
    return tuple(pattern.strip().lower() for pattern in _list_arg(arg))


@_builtin("accept", "Please upload a file with a valid format", targets=_COLLECTION, prepare=_accept_arg)
def check_accept(value: Any, accepted: Sequence[str], context: RuleContext) -> bool:
    members = value if isinstance(value, (list, tuple)) else (value,)
    return all(_accepts(to_text(member), accepted) for member in members)


@_builtin("step", "Please enter a value that is a multiple of {param}", prepare=_number_arg)
def check_step(value: Any, step: float, context: RuleContext) -> bool:
    number = to_number(value)
    if number is None or step <= 0:
        return True
    try:
        return Decimal(to_text(number)) % Decimal(to_text(step)) == 0
    except InvalidOperation:
        return False


DEFAULT_REGISTRY = RuleRegistry.with_builtins()


def register_rule(name: str, check: Optional[RuleCheck] = None, **options: Any) -> Any:
    """Register a rule in the process-wide default registry.

    Usable directly or as a decorator; see ``RuleRegistry.register``.
    """
    return DEFAULT_REGISTRY.register(name, check, **options)


__all__ = [
    "GENERIC_MESSAGE",
    "RuleOutcome",
    "RuleCheck",
    "RuleContext",
    "RuleDefinition",
    "RuleRegistry",
    "BUILTIN_RULES",
    "DEFAULT_REGISTRY",
    "register_rule",
    "parse_date",
]
