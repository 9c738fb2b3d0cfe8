"""Spec model: the immutable tree a form specification is compiled into.

A spec document (already parsed from YAML/JSON by the caller) is checked
against a JSON Schema meta-schema, built into ``FieldSpec`` nodes, and then
linked: every reference in a condition or cross-field rule is resolved to a
spec template once, here, so validation never has to parse or search.

The resulting ``FormSpec`` holds no per-call state and is safe to share
across threads and validation calls.

Usage:
    >>> spec = FormSpec.from_dict({
    ...     "type": "group",
    ...     "properties": {
    ...         "email": {"type": "email", "rules": {"required": True, "email": True}},
    ...     },
    ... })
    >>> spec.root.properties["email"].kind
    <FieldKind.EMAIL: 'email'>
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from formspec.conditions import Condition, parse_condition
from formspec.errors import SpecError, UnresolvedReferenceError
from formspec.paths import (
    ANY_INDEX,
    Path,
    PathResolver,
    container_of,
    format_path,
    is_bindable,
    is_prefix,
    parse_path,
    shape,
)
from formspec.rules import DEFAULT_REGISTRY, RuleRegistry
from formspec.types import FieldKind, RuleTarget

logger = logging.getLogger(__name__)

# Key under which a language-independent label or message is stored.
ANY_LANGUAGE = "*"

_TEXT_BY_LANGUAGE = {
    "oneOf": [
        {"type": "string"},
        {"type": "object", "additionalProperties": {"type": "string"}},
    ]
}

SPEC_META_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "definitions": {"text": _TEXT_BY_LANGUAGE},
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string"},
        "properties": {"type": "object", "additionalProperties": {"$ref": "#"}},
        "items": {"$ref": "#"},
        "rules": {"type": "object"},
        "condition": {"type": ["object", "string"]},
        "display_switch": {"type": ["object", "string"]},
        "label": {"$ref": "#/definitions/text"},
        "messages": {"type": "object", "additionalProperties": {"$ref": "#/definitions/text"}},
        "multiple": {"type": "boolean"},
    },
}

_META_VALIDATOR = Draft7Validator(SPEC_META_SCHEMA)

# Keys that stay on the array node when a ``multiple: true`` group is
# expanded; everything else moves to the item template.
_ARRAY_LEVEL_KEYS = ("rules", "condition", "display_switch", "messages")


@dataclass(frozen=True)
class RuleSpec:
    """A rule declared on a field.

    Attributes:
        name: Rule name
        arg: Argument as written in the spec (used for message formatting)
        prepared: Argument after the rule's ``prepare`` step
        references: Path expressions in the argument -> resolved spec templates
    """
    name: str
    arg: Any
    prepared: Any
    references: Mapping[str, Path] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class FieldSpec:
    """A node of the spec tree: exactly one of group, array, or scalar leaf.

    Attributes:
        name: Field name (the array's name for an item template, "" for the root)
        kind: Node kind
        template: Spec path of this node, with ``ANY_INDEX`` at array levels
        properties: Children in declaration order (groups only)
        items: Item template (arrays only)
        rules: Declared rules in declaration order
        condition: Optional participation condition
        label: Language -> display name
        messages: Rule name -> language -> message template override
    """
    name: str
    kind: FieldKind
    template: Path
    properties: Mapping[str, "FieldSpec"] = field(default_factory=lambda: MappingProxyType({}))
    items: Optional["FieldSpec"] = None
    rules: Tuple[RuleSpec, ...] = ()
    condition: Optional[Condition] = None
    label: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    messages: Mapping[str, Mapping[str, str]] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def is_group(self) -> bool:
        return self.kind is FieldKind.GROUP

    @property
    def is_array(self) -> bool:
        return self.kind is FieldKind.ARRAY

    @property
    def is_leaf(self) -> bool:
        return not self.kind.is_container

    def rule(self, name: str) -> Optional[RuleSpec]:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def label_for(self, language: Optional[str], default_language: Optional[str] = None) -> str:
        """Display name for ``language``, falling back to the default language,
        a language-independent label, any label, and finally the field name."""
        for key in (language, default_language, ANY_LANGUAGE):
            if key is not None and key in self.label:
                return self.label[key]
        for text in self.label.values():
            return text
        return self.name

    def message_for(
        self, rule: str, language: Optional[str], default_language: Optional[str] = None
    ) -> Optional[str]:
        """Field-level message override for ``rule``, or None."""
        templates = self.messages.get(rule)
        if not templates:
            return None
        for key in (language, default_language, ANY_LANGUAGE):
            if key is not None and key in templates:
                return templates[key]
        return None


def _by_language(value: Any) -> Mapping[str, str]:
    if value is None:
        return MappingProxyType({})
    if isinstance(value, str):
        return MappingProxyType({ANY_LANGUAGE: value})
    return MappingProxyType(dict(value))


def _meta_path(error_path: Any) -> str:
    """Spec-node path of a meta-schema error location."""
    node: List[Any] = []
    parts = list(error_path)
    i = 0
    while i < len(parts):
        if parts[i] == "properties" and i + 1 < len(parts):
            node.append(parts[i + 1])
            i += 2
        elif parts[i] == "items":
            node.append(ANY_INDEX)
            i += 1
        else:
            break
    return format_path(tuple(node))


def _check_document(document: Any) -> None:
    if not isinstance(document, Mapping):
        raise SpecError(f"spec document must be a mapping, got {type(document).__name__}", path="")
    error = best_match(_META_VALIDATOR.iter_errors(document))
    if error is not None:
        raise SpecError(f"malformed spec node: {error.message}", path=_meta_path(error.absolute_path))


def _expand_multiple(doc: Mapping[str, Any]) -> Mapping[str, Any]:
    """``{type: group, multiple: true, ...}`` -> array of that group."""
    item = {k: v for k, v in doc.items() if k not in _ARRAY_LEVEL_KEYS and k != "multiple"}
    array: Dict[str, Any] = {k: doc[k] for k in _ARRAY_LEVEL_KEYS if k in doc}
    array["type"] = FieldKind.ARRAY.value
    array["items"] = item
    if "label" in doc:
        array["label"] = doc["label"]
    return array


class _Builder:
    """Two passes: build nodes, then resolve references against the whole tree."""

    def __init__(self, registry: RuleRegistry) -> None:
        self.registry = registry
        self.node_count = 0

    def build(self, doc: Mapping[str, Any], name: str, template: Path) -> FieldSpec:
        where = format_path(template)
        if doc.get("type") == FieldKind.GROUP.value and doc.get("multiple") is True:
            doc = _expand_multiple(doc)

        try:
            kind = FieldKind(doc["type"])
        except ValueError:
            raise SpecError(f"unknown field type '{doc['type']}'", path=where) from None

        has_properties = "properties" in doc
        has_items = "items" in doc
        if kind is FieldKind.GROUP:
            if has_items:
                raise SpecError(
                    "group declares both 'properties' and 'items'" if has_properties
                    else "group declares 'items'; only arrays have an item template",
                    path=where,
                )
            if not has_properties:
                raise SpecError("group must declare 'properties'", path=where)
        elif kind is FieldKind.ARRAY:
            if has_properties:
                raise SpecError("array declares 'properties'; declare them on its 'items' template", path=where)
            if not has_items:
                raise SpecError("array must declare 'items'", path=where)
        elif has_properties or has_items:
            raise SpecError(f"'{kind.value}' field cannot declare 'properties' or 'items'", path=where)

        self.node_count += 1
        properties: Dict[str, FieldSpec] = {}
        for child_name, child_doc in (doc.get("properties") or {}).items():
            properties[child_name] = self.build(child_doc, child_name, template + (child_name,))
        items = self.build(doc["items"], name, template + (ANY_INDEX,)) if kind is FieldKind.ARRAY else None

        return FieldSpec(
            name=name,
            kind=kind,
            template=template,
            properties=MappingProxyType(properties),
            items=items,
            rules=self._rules(doc.get("rules") or {}, kind, where),
            condition=self._condition(doc, where),
            label=_by_language(doc.get("label")),
            messages=MappingProxyType({
                rule: _by_language(text) for rule, text in (doc.get("messages") or {}).items()
            }),
        )

    def _rules(self, rules: Mapping[str, Any], kind: FieldKind, where: str) -> Tuple[RuleSpec, ...]:
        target = RuleTarget.for_kind(kind)
        built: List[RuleSpec] = []
        for name, arg in rules.items():
            if name not in self.registry:
                raise SpecError(f"unknown rule '{name}'", path=where)
            definition = self.registry.get(name)
            if target not in definition.targets:
                raise SpecError(f"rule '{name}' does not apply to {kind.value} fields", path=where)
            try:
                prepared = definition.prepare_arg(arg)
            except (TypeError, ValueError) as e:
                raise SpecError(f"invalid argument for rule '{name}': {e}", path=where) from e
            built.append(RuleSpec(name=name, arg=arg, prepared=prepared))
        return tuple(built)

    def _condition(self, doc: Mapping[str, Any], where: str) -> Optional[Condition]:
        source = doc.get("condition", doc.get("display_switch"))
        if source is None:
            return None
        try:
            return parse_condition(source)
        except ValueError as e:
            raise SpecError(f"invalid condition: {e}", path=where) from e

    def link(self, node: FieldSpec, resolver: PathResolver) -> FieldSpec:
        condition = node.condition
        if condition is not None:
            condition = condition.with_targets(
                lambda expression: _condition_target(resolver, expression, node.template)
            )

        rules = []
        for rule in node.rules:
            expressions = self.registry.get(rule.name).reference_expressions(rule.prepared)
            references = {
                expression: _rule_target(resolver, expression, node.template)
                for expression in expressions
            }
            rules.append(replace(rule, references=MappingProxyType(references)))

        return replace(
            node,
            condition=condition,
            rules=tuple(rules),
            properties=MappingProxyType({
                name: self.link(child, resolver) for name, child in node.properties.items()
            }),
            items=self.link(node.items, resolver) if node.items is not None else None,
        )


def _rule_target(resolver: PathResolver, expression: str, base: Path) -> Path:
    target = resolver.resolve(expression, base)
    if not is_bindable(target, base):
        raise UnresolvedReferenceError(
            expression,
            format_path(base),
            f"'{format_path(target)}' is inside an array element this field is not part of",
        )
    return target


def _condition_target(resolver: PathResolver, expression: str, base: Path) -> Path:
    """Resolve a condition reference, enforcing the at-or-above-own-level rule.

    The target must sit in the referring node's own group or one enclosing
    it, and must not be the node itself, an ancestor, or a descendant.
    """
    target = _rule_target(resolver, expression, base)
    where = format_path(base)
    target_shape, base_shape = shape(target), shape(base)
    if target_shape == base_shape:
        raise UnresolvedReferenceError(expression, where, "a condition cannot reference its own field")
    if is_prefix(target_shape, base_shape):
        raise UnresolvedReferenceError(expression, where, "a condition cannot reference an enclosing group")
    if is_prefix(base_shape, target_shape):
        raise UnresolvedReferenceError(expression, where, "a condition cannot reference a field it contains")
    if not is_prefix(shape(container_of(target)), shape(container_of(base))):
        raise UnresolvedReferenceError(
            expression,
            where,
            f"'{format_path(target)}' is below this field's group level",
        )
    return target


@dataclass(frozen=True, eq=False)
class FormSpec:
    """A compiled, immutable form specification.

    Attributes:
        root: Root group node (its template is the empty path)
        registry: Rule registry the spec was checked against
        node_count: Number of nodes in the tree, root included
    """
    root: FieldSpec
    registry: RuleRegistry
    node_count: int = 0

    @classmethod
    def from_dict(cls, document: Mapping[str, Any], registry: Optional[RuleRegistry] = None) -> "FormSpec":
        """Build a spec model from a parsed specification document.

        Args:
            document: Parsed spec (root must be a ``group``)
            registry: Rule registry to check rule names against; defaults to
                the process-wide default registry

        Raises:
            SpecError: If the document is malformed, uses unknown types or
                rules, or declares an invalid rule argument or condition
            UnresolvedReferenceError: If a condition or cross-field rule
                reference cannot be resolved
        """
        registry = registry if registry is not None else DEFAULT_REGISTRY
        _check_document(document)
        if document["type"] != FieldKind.GROUP.value or document.get("multiple") is True:
            raise SpecError("root of a spec must be a group", path="")

        builder = _Builder(registry)
        draft = builder.build(document, "", ())
        root = builder.link(draft, PathResolver(draft))
        logger.debug("Built spec with %d nodes", builder.node_count)
        return cls(root=root, registry=registry, node_count=builder.node_count)

    def walk(self) -> Iterator[FieldSpec]:
        """All nodes, depth-first, in declaration order (item templates after their array)."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if node.items is not None:
                stack.append(node.items)
            stack.extend(reversed(list(node.properties.values())))

    def node_at(self, path: Union[str, Path]) -> Optional[FieldSpec]:
        """Spec node governing a concrete path (``"groups[2].name"`` or a tuple)."""
        if isinstance(path, str):
            path = parse_path(path)
        return PathResolver(self.root).node_at(shape(path))


__all__ = [
    "ANY_LANGUAGE",
    "SPEC_META_SCHEMA",
    "RuleSpec",
    "FieldSpec",
    "FormSpec",
]
