"""Adapter between the shared conformance corpus and the engine's public API.

Every implementation of the engine is checked against the same corpus of
``{spec, cases: [{input, expected: {valid, error?, field?}}]}`` documents. This
module applies the corpus conventions and compares results:

- A spec that is not a group is the single property ``value`` of a root
  group, and its case input becomes ``{"value": input}``.
- The string ``"__undefined__"`` marks an absent value (as opposed to an
  empty string). As a case input or as a mapping value anywhere inside one,
  the key is left out.
- Only the first error of a result is compared with ``expected.error`` (rule)
  and ``expected.field`` (path), and only when those are given.

Usage:
    >>> suite = {"tests": [{
    ...     "id": "email-optional",
    ...     "spec": {"type": "email", "rules": {"email": True}},
    ...     "cases": [{"input": "__undefined__", "expected": {"valid": True}}],
    ... }]}
    >>> [report.passed for report in run_suite(suite)]
    [True]
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from formspec.results import ValidationResult
from formspec.rules import RuleRegistry
from formspec.runtime import FormValidator

logger = logging.getLogger(__name__)

UNDEFINED_MARKER = "__undefined__"
WRAPPED_FIELD = "value"


@dataclass(frozen=True)
class CaseReport:
    """Outcome of one corpus case.

    Attributes:
        test_id: Id of the corpus test the case belongs to
        case_index: Position of the case within the test
        passed: Whether the engine agreed with the expectation
        expected: The case's ``expected`` mapping
        actual: ``{valid, error?, field?}`` produced by the engine
    """
    test_id: str
    case_index: int
    passed: bool
    expected: Mapping[str, Any]
    actual: Mapping[str, Any] = field(default_factory=dict)


def is_wrapped(spec: Mapping[str, Any]) -> bool:
    """Whether a corpus spec is a single field that needs a root group."""
    return not (spec.get("type") == "group" and "properties" in spec)


def wrap_spec(spec: Mapping[str, Any]) -> Mapping[str, Any]:
    if not is_wrapped(spec):
        return spec
    return {"type": "group", "properties": {WRAPPED_FIELD: spec}}


def strip_undefined(value: Any) -> Any:
    """Drop mapping entries whose value is the undefined marker, recursively."""
    if isinstance(value, Mapping):
        return {k: strip_undefined(v) for k, v in value.items() if v != UNDEFINED_MARKER}
    if isinstance(value, list):
        return [strip_undefined(v) for v in value]
    return value


def wrap_input(spec: Mapping[str, Any], value: Any) -> Any:
    if not is_wrapped(spec):
        return strip_undefined(value)
    if value == UNDEFINED_MARKER:
        return {}
    return {WRAPPED_FIELD: strip_undefined(value)}


def summarize(result: ValidationResult) -> Dict[str, Any]:
    """The part of a result the corpus compares: validity and first error."""
    actual: Dict[str, Any] = {"valid": result.valid}
    first = result.first_error
    if first is not None:
        actual["error"] = first.rule
        actual["field"] = first.path
    return actual


def matches(expected: Mapping[str, Any], actual: Mapping[str, Any]) -> bool:
    if actual["valid"] != expected["valid"]:
        return False
    if not expected["valid"]:
        for key in ("error", "field"):
            if expected.get(key) and actual.get(key) != expected[key]:
                return False
    return True


def run_case(
    validator: FormValidator,
    spec: Mapping[str, Any],
    case: Mapping[str, Any],
    test_id: str = "",
    case_index: int = 0,
    language: Optional[str] = None,
) -> CaseReport:
    """Run one corpus case against an already-built validator for ``spec``."""
    result = validator.validate(wrap_input(spec, case.get("input")), language=language)
    actual = summarize(result)
    expected = case["expected"]
    return CaseReport(
        test_id=test_id,
        case_index=case_index,
        passed=matches(expected, actual),
        expected=expected,
        actual=actual,
    )


def run_test(
    test: Mapping[str, Any],
    registry: Optional[RuleRegistry] = None,
    language: Optional[str] = None,
) -> List[CaseReport]:
    """Run every case of one corpus test; the spec is compiled once."""
    spec = test["spec"]
    validator = FormValidator(wrap_spec(spec), registry=registry)
    return [
        run_case(validator, spec, case, test_id=test.get("id", ""), case_index=index, language=language)
        for index, case in enumerate(test.get("cases", []))
    ]


def run_suite(
    suite: Mapping[str, Any],
    registry: Optional[RuleRegistry] = None,
    language: Optional[str] = None,
) -> List[CaseReport]:
    """Run a whole corpus suite (``{"tests": [...]}``) in document order.

    Raises:
        SpecError: If a test's spec is invalid
    """
    reports: List[CaseReport] = []
    for test in suite.get("tests", []):
        reports.extend(run_test(test, registry=registry, language=language))
    failed = sum(1 for report in reports if not report.passed)
    logger.debug("Conformance: %d cases, %d failed", len(reports), failed)
    return reports


__all__ = [
    "UNDEFINED_MARKER",
    "WRAPPED_FIELD",
    "CaseReport",
    "wrap_spec",
    "wrap_input",
    "strip_undefined",
    "summarize",
    "run_case",
    "run_test",
    "run_suite",
]
