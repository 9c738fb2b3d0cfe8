"""Evaluator: walks a spec model against a data tree and collects rule failures.

Traversal is depth-first, pre-order, in declaration order; array elements are
visited in ascending index order. For every node the evaluator:

1. Evaluates the node's condition against raw data. A false condition marks
   the node and its whole subtree as skipped. Skipped subtrees are still
   walked (so their outcomes are recorded), but emit no errors.
2. Runs the node's rules in declaration order, stopping at the first failure.
   Containers run their own rules (e.g. ``required``, ``length``) before their
   children or elements are visited.
3. Descends into group children / array elements.

Input shape is never trusted. A scalar where a group or array is expected,
or a mapping where a scalar is expected, reads as an absent value, so
in-flight input produces ``required`` failures rather than exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from formspec.conditions import Comparison
from formspec.model import FieldSpec, FormSpec, RuleSpec
from formspec.paths import MISSING, Path, bind, format_path, get_value
from formspec.rules import RuleContext, RuleRegistry
from formspec.types import FieldKind

logger = logging.getLogger(__name__)

IMPLICIT_NUMBER_RULE = RuleSpec(name="number", arg=True, prepared=True)


@dataclass(frozen=True)
class RuleFailure:
    """A failed rule on one concrete path.

    Attributes:
        rule: Rule name
        path: Concrete path of the failing field
        message_key: Key for template lookup (rule name or ``rule.variant``)
        default_message: The rule's built-in English template for the key
        arg: Rule argument as written in the spec
        params: Extra template values reported by the rule
        value: The value the rule was evaluated against (None when absent)
    """
    rule: str
    path: Path
    message_key: str
    default_message: str
    arg: Any = None
    params: Mapping[str, Any] = field(default_factory=dict)
    value: Any = None


@dataclass
class ValidationOutcome:
    """Per-node result of one validation call.

    Attributes:
        path: Concrete path of the node
        node: The spec node
        field_present: Whether the data holds a value of the right shape here
        skipped_by_condition: Whether this node or an ancestor was switched off
        errors: Rule failures (at most one per node)
    """
    path: Path
    node: FieldSpec
    field_present: bool
    skipped_by_condition: bool
    errors: List[RuleFailure] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


@dataclass
class _Call:
    data: Any
    language: Optional[str]
    outcomes: List[ValidationOutcome]


class Evaluator:
    """Tree-walking evaluator over a compiled ``FormSpec``.

    The evaluator holds no per-call state; one instance may serve concurrent
    calls.

    Attributes:
        spec: The compiled spec
        registry: Registry used to evaluate rules (defaults to the spec's)
        implicit_type_rules: Run ``number`` first on number fields that do
            not declare it, when the registry has a ``number`` rule

    Examples:
        >>> spec = FormSpec.from_dict({"type": "group", "properties": {
        ...     "tags": {"type": "array", "items": {"type": "text", "rules": {"required": True}}}}})
        >>> outcomes = Evaluator(spec).evaluate({"tags": ["a", "", "c"]})
        >>> [format_path(o.path) for o in outcomes if o.errors]
        ['tags[1]']
    """

    def __init__(
        self,
        spec: FormSpec,
        registry: Optional[RuleRegistry] = None,
        implicit_type_rules: bool = True,
    ) -> None:
        self.spec = spec
        self.registry = registry if registry is not None else spec.registry
        self.implicit_type_rules = implicit_type_rules

    def evaluate(self, data: Any, language: Optional[str] = None) -> List[ValidationOutcome]:
        """Validate ``data`` and return one outcome per visited node, in traversal order.

        Neither the spec nor ``data`` is modified.

        Raises:
            SpecError: If a declared rule is no longer in the registry
        """
        call = _Call(data=data, language=language, outcomes=[])
        self._visit(self.spec.root, data, (), False, call)
        return call.outcomes

    def _visit(self, node: FieldSpec, raw: Any, path: Path, skipped: bool, call: _Call) -> None:
        if not skipped and node.condition is not None:
            if not node.condition.evaluate(lambda comparison: self._read(comparison, path, call.data)):
                logger.debug("Condition off at %s; skipping subtree", format_path(path) or "<root>")
                skipped = True

        if node.kind is FieldKind.GROUP:
            container = raw if isinstance(raw, Mapping) else None
            outcome = self._record(node, path, container is not None, skipped, call)
            if not skipped:
                self._apply_rules(node, container, path, outcome, call)
            for name, child in node.properties.items():
                child_raw = container.get(name, MISSING) if container is not None else MISSING
                self._visit(child, child_raw, path + (name,), skipped, call)

        elif node.kind is FieldKind.ARRAY:
            elements = raw if isinstance(raw, (list, tuple)) else None
            outcome = self._record(node, path, elements is not None, skipped, call)
            if not skipped:
                self._apply_rules(node, elements, path, outcome, call)
            for index, element in enumerate(elements or ()):
                self._visit(node.items, element, path + (index,), skipped, call)

        else:
            malformed = raw is MISSING or isinstance(raw, Mapping)
            outcome = self._record(node, path, not malformed, skipped, call)
            if not skipped:
                self._apply_rules(node, None if malformed else raw, path, outcome, call)

    @staticmethod
    def _record(node: FieldSpec, path: Path, present: bool, skipped: bool, call: _Call) -> ValidationOutcome:
        outcome = ValidationOutcome(
            path=path,
            node=node,
            field_present=present,
            skipped_by_condition=skipped,
        )
        call.outcomes.append(outcome)
        return outcome

    @staticmethod
    def _read(comparison: Comparison, path: Path, data: Any) -> Any:
        if comparison.target is None:
            return MISSING
        concrete = bind(comparison.target, path)
        if concrete is None:
            return MISSING
        return get_value(data, concrete)

    def _apply_rules(
        self, node: FieldSpec, value: Any, path: Path, outcome: ValidationOutcome, call: _Call
    ) -> None:
        rules = node.rules
        if (
            self.implicit_type_rules
            and node.kind is FieldKind.NUMBER
            and node.rule("number") is None
            and "number" in self.registry
        ):
            rules = (IMPLICIT_NUMBER_RULE,) + rules

        for rule in rules:
            context = RuleContext(
                path=path,
                node=node,
                data=call.data,
                references=rule.references,
                language=call.language,
            )
            result = self.registry.evaluate(rule.name, value, rule.prepared, context)
            if result.ok:
                continue
            message_key = result.message_key or rule.name
            outcome.errors.append(RuleFailure(
                rule=rule.name,
                path=path,
                message_key=message_key,
                default_message=self.registry.get(rule.name).message_for(message_key),
                arg=rule.arg,
                params=dict(result.params),
                value=value,
            ))
            # First failure per field only.
            break


__all__ = [
    "RuleFailure",
    "ValidationOutcome",
    "Evaluator",
]
