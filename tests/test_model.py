"""Unit tests for the spec model.

Tests cover:
- Building the node tree (kinds, templates, declaration order)
- multiple: true group shorthand
- Labels and per-field message overrides
- Construction-time SpecError cases
- Reference linking and UnresolvedReferenceError cases
"""

import pytest

from formspec.conditions import Comparison
from formspec.errors import SpecError, UnresolvedReferenceError
from formspec.model import ANY_LANGUAGE, FormSpec
from formspec.paths import ANY_INDEX
from formspec.rules import RuleRegistry
from formspec.types import FieldKind


def group(**properties):
    return {"type": "group", "properties": properties}


class TestBuild:
    """Test building spec trees."""

    def test_group_children_in_declaration_order(self):
        """Children keep their declaration order."""
        spec = FormSpec.from_dict(group(
            zeta={"type": "text"},
            alpha={"type": "email"},
            mid={"type": "number"},
        ))
        assert list(spec.root.properties) == ["zeta", "alpha", "mid"]
        assert spec.root.properties["alpha"].kind is FieldKind.EMAIL
        assert spec.root.template == ()
        assert spec.root.is_group

    def test_array_item_template(self):
        """Array items are addressed with ANY_INDEX."""
        spec = FormSpec.from_dict(group(tags={"type": "array", "items": {"type": "text"}}))
        tags = spec.root.properties["tags"]
        assert tags.is_array
        assert tags.items.template == ("tags", ANY_INDEX)
        assert tags.items.name == "tags"
        assert tags.items.is_leaf

    def test_rules_in_declaration_order(self):
        """Rules keep their declaration order and raw arguments."""
        spec = FormSpec.from_dict(group(
            email={"type": "email", "rules": {"required": True, "email": True, "maxlength": 50}},
        ))
        rules = spec.root.properties["email"].rules
        assert [rule.name for rule in rules] == ["required", "email", "maxlength"]
        assert rules[2].arg == 50
        assert rules[2].prepared == 50

    def test_multiple_group_becomes_array(self):
        """multiple: true wraps the group in an array; rules stay on the array."""
        spec = FormSpec.from_dict(group(groups={
            "type": "group",
            "multiple": True,
            "label": "Groups",
            "rules": {"length": {"min": 1}},
            "properties": {"name": {"type": "text"}},
        }))
        groups = spec.root.properties["groups"]
        assert groups.kind is FieldKind.ARRAY
        assert groups.rule("length") is not None
        assert groups.items.kind is FieldKind.GROUP
        assert groups.items.rules == ()
        assert groups.items.properties["name"].template == ("groups", ANY_INDEX, "name")
        assert groups.label_for("en") == "Groups"

    def test_walk_and_node_count(self):
        """walk() is depth-first in declaration order."""
        spec = FormSpec.from_dict(group(
            a={"type": "text"},
            b={"type": "array", "items": group(c={"type": "text"})},
            d={"type": "text"},
        ))
        names = [node.template for node in spec.walk()]
        assert names == [(), ("a",), ("b",), ("b", ANY_INDEX), ("b", ANY_INDEX, "c"), ("d",)]
        assert spec.node_count == 6

    def test_node_at_concrete_path(self):
        """node_at maps a concrete path to its governing node."""
        spec = FormSpec.from_dict(group(b={"type": "array", "items": group(c={"type": "text"})}))
        assert spec.node_at("b[3].c").template == ("b", ANY_INDEX, "c")
        assert spec.node_at(("b", 0)).kind is FieldKind.GROUP
        assert spec.node_at("b[3].x") is None

    def test_ignored_renderer_keys(self):
        """Renderer-only keys are accepted and ignored."""
        spec = FormSpec.from_dict(group(name={"type": "text", "placeholder": "Your name", "default": "x"}))
        assert spec.root.properties["name"].kind is FieldKind.TEXT


class TestLabelsAndMessages:
    """Test label and message lookup on nodes."""

    def test_label_by_language(self):
        """Language-specific label, then default language, then any label."""
        spec = FormSpec.from_dict(group(name={"type": "text", "label": {"en": "Name", "ko": "이름"}}))
        name = spec.root.properties["name"]
        assert name.label_for("ko", "en") == "이름"
        assert name.label_for("fr", "en") == "Name"
        assert name.label_for("fr", "de") == "Name"

    def test_plain_string_label(self):
        """A plain string label applies to every language."""
        spec = FormSpec.from_dict(group(name={"type": "text", "label": "Name"}))
        name = spec.root.properties["name"]
        assert name.label == {ANY_LANGUAGE: "Name"}
        assert name.label_for("ko", "en") == "Name"

    def test_label_falls_back_to_name(self):
        """Without a label the field name is used."""
        spec = FormSpec.from_dict(group(nickname={"type": "text"}))
        assert spec.root.properties["nickname"].label_for("en") == "nickname"

    def test_message_overrides(self):
        """Per-field messages by rule and language."""
        spec = FormSpec.from_dict(group(name={
            "type": "text",
            "rules": {"required": True, "maxlength": 5},
            "messages": {"required": {"en": "Tell us your name", "ko": "이름을 입력하세요"}, "maxlength": "Too long"},
        }))
        name = spec.root.properties["name"]
        assert name.message_for("required", "ko", "en") == "이름을 입력하세요"
        assert name.message_for("required", "fr", "en") == "Tell us your name"
        assert name.message_for("maxlength", "ko", "en") == "Too long"
        assert name.message_for("email", "en") is None


class TestSpecErrors:
    """Test construction-time failures."""

    def test_not_a_mapping(self):
        """The document must be a mapping."""
        with pytest.raises(SpecError):
            FormSpec.from_dict(["not", "a", "spec"])

    def test_root_must_be_group(self):
        """A scalar or multiple root is rejected."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict({"type": "text"})
        assert exc_info.value.path == ""
        with pytest.raises(SpecError):
            FormSpec.from_dict({"type": "group", "multiple": True, "properties": {}})

    def test_multiple_must_be_boolean(self):
        """A non-boolean ``multiple`` flag is rejected instead of being ignored."""
        doc = group(groups={"type": "group", "multiple": "true", "properties": {"name": {"type": "text"}}})
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(doc)
        assert exc_info.value.path == "groups"

    def test_unknown_type(self):
        """Unknown field types are rejected with the node path."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(group(address=group(city={"type": "color"})))
        assert exc_info.value.path == "address.city"
        assert "color" in str(exc_info.value)

    def test_missing_type_reported_by_meta_schema(self):
        """Shape errors carry the offending node's path."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(group(address=group(city={"label": "City"})))
        assert exc_info.value.path == "address.city"

    def test_rules_must_be_mapping(self):
        """rules is a mapping of rule name to argument."""
        with pytest.raises(SpecError):
            FormSpec.from_dict(group(name={"type": "text", "rules": ["required"]}))

    def test_group_with_properties_and_items(self):
        """A group cannot declare both properties and items."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(group(bad={"type": "group", "properties": {}, "items": {"type": "text"}}))
        assert "both" in str(exc_info.value)
        assert exc_info.value.path == "bad"

    @pytest.mark.parametrize("node", [
        {"type": "group"},
        {"type": "array"},
        {"type": "array", "items": {"type": "text"}, "properties": {}},
        {"type": "text", "items": {"type": "text"}},
        {"type": "text", "properties": {}},
    ])
    def test_container_shape_errors(self, node):
        """properties belong to groups and items to arrays."""
        with pytest.raises(SpecError):
            FormSpec.from_dict(group(bad=node))

    def test_unknown_rule(self):
        """Unknown rule names fail at construction."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(group(name={"type": "text", "rules": {"frobnicate": True}}))
        assert "frobnicate" in str(exc_info.value)

    def test_rule_known_to_custom_registry(self):
        """Rules are checked against the registry given at construction."""
        registry = RuleRegistry.with_builtins()
        registry.register("even", lambda value, arg, ctx: int(value) % 2 == 0)
        document = group(n={"type": "number", "rules": {"even": True}})
        assert FormSpec.from_dict(document, registry=registry).registry is registry
        with pytest.raises(SpecError):
            FormSpec.from_dict(document, registry=RuleRegistry.with_builtins())

    @pytest.mark.parametrize("node", [
        {"type": "group", "properties": {}, "rules": {"length": 2}},
        {"type": "group", "properties": {}, "rules": {"email": True}},
        {"type": "array", "items": {"type": "text"}, "rules": {"pattern": "x"}},
    ])
    def test_rule_not_applicable_to_kind(self, node):
        """Rules declare which node kinds they apply to."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(group(bad=node))
        assert "does not apply" in str(exc_info.value)

    def test_invalid_rule_argument(self):
        """Arguments are prepared once and rejected when malformed."""
        with pytest.raises(SpecError) as exc_info:
            FormSpec.from_dict(group(code={"type": "text", "rules": {"pattern": "("}}))
        assert "pattern" in str(exc_info.value)

    def test_malformed_condition(self):
        """Conditions are parsed at construction."""
        with pytest.raises(SpecError):
            FormSpec.from_dict(group(a={"type": "text"}, b={"type": "text", "condition": {"path": "a"}}))


class TestReferences:
    """Test linking of condition and rule references."""

    def test_condition_target_resolved(self):
        """Condition comparisons carry the resolved template."""
        spec = FormSpec.from_dict(group(
            has_options={"type": "select"},
            groups={
                "type": "array",
                "condition": {"path": "has_options", "equals": "1"},
                "items": group(name={"type": "text"}),
            },
        ))
        condition = spec.root.properties["groups"].condition
        assert isinstance(condition, Comparison)
        assert condition.target == ("has_options",)

    def test_display_switch_alias(self):
        """display_switch is accepted in place of condition."""
        spec = FormSpec.from_dict(group(
            toggle={"type": "checkbox"},
            extra={"type": "text", "display_switch": ".toggle == true"},
        ))
        assert spec.root.properties["extra"].condition.target == ("toggle",)

    def test_condition_from_array_element_to_outer_field(self):
        """Item fields may look at fields above their group level."""
        spec = FormSpec.from_dict(group(
            mode={"type": "select"},
            groups={"type": "array", "items": group(
                kind={"type": "select"},
                name={"type": "text", "condition": {"all": [
                    {"path": "..mode", "equals": "advanced"},
                    {"path": ".kind", "equals": "named"},
                ]}},
            )},
        ))
        name = spec.root.properties["groups"].items.properties["name"]
        assert [c.target for c in name.condition.comparisons()] == [
            ("mode",),
            ("groups", ANY_INDEX, "kind"),
        ]

    def test_rule_references_resolved(self):
        """Cross-field rule arguments are resolved to templates."""
        spec = FormSpec.from_dict(group(
            password={"type": "password"},
            password_confirm={"type": "password", "rules": {"match": "password"}},
        ))
        rule = spec.root.properties["password_confirm"].rule("match")
        assert rule.references == {"password": ("password",)}

    def test_relative_rule_reference_in_array(self):
        """.name inside an array element stays in that element."""
        spec = FormSpec.from_dict(group(groups={"type": "array", "items": group(
            name={"type": "text"},
            name_confirm={"type": "text", "rules": {"match": ".name"}},
        )}))
        rule = spec.root.properties["groups"].items.properties["name_confirm"].rule("match")
        assert rule.references == {".name": ("groups", ANY_INDEX, "name")}

    def test_unresolvable_rule_reference(self):
        """A path that does not exist is rejected."""
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            FormSpec.from_dict(group(confirm={"type": "text", "rules": {"match": "missing"}}))
        assert exc_info.value.reference == "missing"
        assert exc_info.value.path == "confirm"
        assert isinstance(exc_info.value, SpecError)

    def test_rule_reference_into_foreign_array(self):
        """A reference needing an index the field does not have is rejected."""
        with pytest.raises(UnresolvedReferenceError):
            FormSpec.from_dict(group(
                groups={"type": "array", "items": group(name={"type": "text"})},
                summary={"type": "text", "rules": {"match": "groups.name"}},
            ))

    def test_condition_on_itself(self):
        """A condition cannot reference its own field."""
        with pytest.raises(UnresolvedReferenceError):
            FormSpec.from_dict(group(a={"type": "text", "condition": {"path": "a", "equals": "1"}}))

    def test_condition_on_ancestor(self):
        """A condition cannot reference an enclosing group."""
        with pytest.raises(UnresolvedReferenceError):
            FormSpec.from_dict(group(address=group(
                city={"type": "text", "condition": {"path": "address", "empty": False}},
            )))

    def test_condition_on_descendant(self):
        """A group's condition cannot reference a field it contains."""
        with pytest.raises(UnresolvedReferenceError):
            FormSpec.from_dict(group(address={
                "type": "group",
                "condition": {"path": "address.country", "equals": "KR"},
                "properties": {"country": {"type": "select"}},
            }))

    def test_condition_below_own_level(self):
        """A condition cannot reference a field nested below its group level."""
        with pytest.raises(UnresolvedReferenceError):
            FormSpec.from_dict(group(
                address=group(country={"type": "select"}),
                phone={"type": "text", "condition": {"path": "address.country", "equals": "KR"}},
            ))

    def test_condition_sibling_in_nested_group(self):
        """Siblings at the same level are allowed."""
        spec = FormSpec.from_dict(group(address=group(
            country={"type": "select"},
            state={"type": "text", "condition": ".country == US"},
        )))
        state = spec.root.properties["address"].properties["state"]
        assert state.condition.target == ("address", "country")
