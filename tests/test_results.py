"""Unit tests for result assembly and message resolution.

Tests cover:
- FieldError and ValidationResult structure and serialization
- MessageCatalog lookup with variant fallback
- Template lookup order (field overrides, resolver, built-in, generic)
- Template placeholders and labels by language
"""

import pytest

from formspec.errors import FieldError
from formspec.results import MessageCatalog, ValidationResult
from formspec.rules import RuleRegistry
from formspec.runtime import FormValidator, validate


def group(**properties):
    return {"type": "group", "properties": properties}


NAME_SPEC = group(name={
    "type": "text",
    "label": {"en": "Name", "ko": "이름"},
    "rules": {"required": True, "minlength": 3},
})


class TestFieldError:
    """Test the external error entry."""

    def test_to_dict_omits_value_by_default(self):
        """Only path, rule and message are serialized by default."""
        error = FieldError(path="tags[1]", rule="required", message="Tags is required", value="")
        assert error.to_dict() == {"path": "tags[1]", "rule": "required", "message": "Tags is required"}

    def test_to_dict_with_value(self):
        """The value can be included on request."""
        error = FieldError(path="age", rule="min", message="too small", value="3")
        assert error.to_dict(include_value=True)["value"] == "3"

    def test_from_dict_round_trip(self):
        """from_dict rebuilds an equal error."""
        error = FieldError(path="a.b", rule="email", message="bad")
        assert FieldError.from_dict(error.to_dict()) == error


class TestValidationResult:
    """Test ValidationResult helpers."""

    def test_valid_result(self):
        """No errors means valid."""
        result = validate(NAME_SPEC, {"name": "Ada Lovelace"})
        assert result.valid is True
        assert result.is_valid is True
        assert result.first_error is None
        assert result.to_dict() == {"valid": True, "errors": []}

    def test_invalid_result(self):
        """Errors are addressable by path."""
        spec = group(
            name={"type": "text", "rules": {"required": True}},
            email={"type": "email", "rules": {"email": True}},
        )
        result = validate(spec, {"email": "bad"})
        assert result.valid is False
        assert result.first_error.path == "name"
        assert result.error_for("email").rule == "email"
        assert result.error_for("missing") is None
        assert list(result.errors_by_path()) == ["name", "email"]
        assert result.to_dict()["errors"][1] == {
            "path": "email",
            "rule": "email",
            "message": "Please enter a valid email address",
        }

    def test_constructed_directly(self):
        """A result can be built by hand."""
        result = ValidationResult(valid=False, errors=[FieldError(path="a", rule="required", message="A")])
        assert result.first_error.path == "a"


class TestMessageCatalog:
    """Test the dictionary-backed resolver."""

    def test_lookup(self):
        """Templates are found by language and key."""
        catalog = MessageCatalog({"ko": {"required": "{field}은(는) 필수입니다"}})
        assert catalog.lookup("required", "ko") == "{field}은(는) 필수입니다"
        assert catalog.lookup("required", "fr") is None
        assert catalog("required", "ko") == catalog.lookup("required", "ko")

    def test_variant_falls_back_to_rule(self):
        """min.length falls back to min when only min is translated."""
        catalog = MessageCatalog({"en": {"min": "Too small"}})
        assert catalog.lookup("min.length", "en") == "Too small"

    def test_variant_entry_preferred(self):
        """An exact variant entry wins over the rule entry."""
        catalog = MessageCatalog({"en": {"min": "Too small", "min.length": "Too short"}})
        assert catalog.lookup("min.length", "en") == "Too short"

    def test_add_and_languages(self):
        """add merges entries; languages lists them sorted."""
        catalog = MessageCatalog()
        catalog.add("ko", {"required": "필수"})
        catalog.add("en", {"required": "Required"})
        catalog.add("ko", {"email": "이메일"})
        assert catalog.languages() == ["en", "ko"]
        assert catalog.lookup("email", "ko") == "이메일"


class TestMessageResolution:
    """Test how messages are chosen and filled."""

    def test_builtin_english_default(self):
        """Without translations the rule's English template is used."""
        result = validate(NAME_SPEC, {})
        assert result.errors[0].message == "Name is required"

    def test_param_placeholder(self):
        """{param} renders the rule argument."""
        result = validate(NAME_SPEC, {"name": "Al"})
        assert result.errors[0].message == "Please enter at least 3 characters"

    def test_translated_template_and_label(self):
        """The requested language selects both template and label."""
        messages = {"ko": {"required": "{field}은(는) 필수입니다"}}
        result = validate(NAME_SPEC, {}, language="ko", messages=messages)
        assert result.errors[0].message == "이름은(는) 필수입니다"

    def test_unknown_language_falls_back(self):
        """An unknown language falls back to the default language."""
        messages = {"en": {"required": "{field} must be filled in"}}
        result = validate(NAME_SPEC, {}, language="fr", messages=messages)
        assert result.errors[0].message == "Name must be filled in"

    def test_callable_resolver(self):
        """Any callable (key, language) -> template works as a resolver."""
        seen = []

        def resolver(key, language):
            seen.append((key, language))
            return None

        result = validate(NAME_SPEC, {"name": "Al"}, language="de", messages=resolver)
        assert seen == [("minlength", "de"), ("minlength", "en")]
        assert result.errors[0].message == "Please enter at least 3 characters"

    def test_field_override_wins(self):
        """Per-field messages take precedence over the resolver."""
        spec = group(name={
            "type": "text",
            "rules": {"required": True},
            "messages": {"required": {"en": "Tell us your name", "ko": "이름을 알려주세요"}},
        })
        messages = {"ko": {"required": "{field}은(는) 필수입니다"}}
        assert validate(spec, {}, language="ko", messages=messages).errors[0].message == "이름을 알려주세요"
        assert validate(spec, {}, language="fr").errors[0].message == "Tell us your name"

    def test_message_variant_key(self):
        """Rules with several failure modes resolve their variant key."""
        spec = group(name={"type": "text", "rules": {"max": 3}})
        messages = {"en": {"max.length": "{field}: at most {param} characters"}}
        result = validate(spec, {"name": "abcd"}, messages=messages)
        assert result.errors[0].message == "name: at most 3 characters"

    def test_mapping_argument_placeholders(self):
        """Keys of a mapping argument are available to templates."""
        spec = group(tags={"type": "array", "rules": {"length": {"min": 1, "max": 2}}, "items": {"type": "text"}})
        result = validate(spec, {"tags": ["a", "b", "c"]})
        assert result.errors[0].message == "Please provide between 1 and 2 items"

    def test_range_placeholders(self):
        """Rule params fill {min} and {max}."""
        spec = group(score={"type": "number", "rules": {"range": [1, 10]}})
        result = validate(spec, {"score": "11"})
        assert result.errors[0].message == "Please enter a value between 1 and 10"

    def test_value_and_path_placeholders(self):
        """{value} and {path} describe the failing input."""
        spec = group(tags={"type": "array", "items": {"type": "text", "rules": {"in": ["a", "b"]}}})
        messages = {"en": {"in": "{value} is not allowed at {path}"}}
        result = validate(spec, {"tags": ["a", "z"]}, messages=messages)
        assert result.errors[0].message == "z is not allowed at tags[1]"

    def test_unknown_placeholder_left_intact(self):
        """Placeholders without a value stay as written."""
        messages = {"en": {"required": "{field} {nonsense}"}}
        assert validate(NAME_SPEC, {}, messages=messages).errors[0].message == "Name {nonsense}"

    def test_broken_template_returned_verbatim(self):
        """A template that cannot be formatted is used as is."""
        messages = {"en": {"required": "{field"}}
        assert validate(NAME_SPEC, {}, messages=messages).errors[0].message == "{field"

    @pytest.mark.parametrize("template", ["{field} {nonsense.attr}", "{field.upper.x}", "{field[x]}"])
    def test_attribute_and_index_placeholders_returned_verbatim(self, template):
        """Placeholders that look up attributes or items never raise."""
        messages = {"en": {"required": template}}
        assert validate(NAME_SPEC, {}, messages=messages).errors[0].message == template

    def test_generic_fallback(self):
        """Custom rules without a template use the generic message."""
        registry = RuleRegistry.with_builtins()
        registry.register("never", lambda value, arg, ctx: False)
        validator = FormValidator(group(nickname={"type": "text", "rules": {"never": True}}), registry=registry)
        assert validator.validate({"nickname": "x"}).errors[0].message == "nickname is invalid"

    @pytest.mark.parametrize("language", ["en", "ko", "fr"])
    def test_label_of_array_element(self, language):
        """Elements use the item template's label in the requested language."""
        spec = group(tags={
            "type": "array",
            "label": {"en": "Tags", "ko": "태그"},
            "items": {"type": "text", "label": {"en": "Tag", "ko": "태그"}, "rules": {"required": True}},
        })
        expected = {"en": "Tag is required", "ko": "태그 is required", "fr": "Tag is required"}
        assert validate(spec, {"tags": [""]}, language=language).errors[0].message == expected[language]
