"""Result assembly: turns evaluator outcomes into the external validation result.

The assembler keeps traversal order, drops outcomes without errors, and
resolves each failure's message key to a template for the requested
language. Translation catalogs belong to the caller; the engine only asks an
injected resolver ``(message_key, language) -> template | None``.

Template lookup order for language ``L`` with default language ``D``:

1. the field's own ``messages`` entry for the rule, in ``L`` then ``D``
2. the injected resolver, for ``L`` then ``D``
3. the rule's built-in English template
4. ``"{field} is invalid"``
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from typing_extensions import TypedDict

from formspec.errors import FieldError, FieldErrorDict
from formspec.model import FieldSpec
from formspec.paths import format_path
from formspec.rules import GENERIC_MESSAGE
from formspec.validation import RuleFailure, ValidationOutcome
from formspec.values import to_text

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

MessageResolver = Callable[[str, str], Optional[str]]
"""Looks up a message template by key and language; returns None when absent."""


class ValidationResultDict(TypedDict):
    valid: bool
    errors: List[FieldErrorDict]


@dataclass(frozen=True)
class ValidationResult:
    """Verdict of one validation call.

    Attributes:
        valid: True when no errors were emitted
        errors: Errors in spec declaration order (depth-first), array
            elements in ascending index order, at most one per path

    Examples:
        >>> result = ValidationResult(valid=True, errors=[])
        >>> result.to_dict()
        {'valid': True, 'errors': []}
    """
    valid: bool
    errors: List[FieldError]

    @property
    def is_valid(self) -> bool:
        return self.valid

    @property
    def first_error(self) -> Optional[FieldError]:
        return self.errors[0] if self.errors else None

    def error_for(self, path: str) -> Optional[FieldError]:
        """Error at a bracket-notation path, or None."""
        for error in self.errors:
            if error.path == path:
                return error
        return None

    def errors_by_path(self) -> Dict[str, FieldError]:
        return {error.path: error for error in self.errors}

    def to_dict(self) -> ValidationResultDict:
        """Convert to dict for serialization."""
        return {
            "valid": self.valid,
            "errors": [error.to_dict() for error in self.errors],
        }


class MessageCatalog:
    """Dictionary-backed message resolver: language -> message key -> template.

    A key ``rule.variant`` that has no entry falls back to ``rule``.

    Examples:
        >>> catalog = MessageCatalog({"ko": {"required": "{field}은(는) 필수입니다"}})
        >>> catalog.lookup("required", "ko")
        '{field}은(는) 필수입니다'
        >>> catalog.lookup("required", "fr") is None
        True
    """

    def __init__(self, templates: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        self._templates: Dict[str, Dict[str, str]] = {}
        for language, entries in (templates or {}).items():
            self.add(language, entries)

    def add(self, language: str, entries: Mapping[str, str]) -> None:
        self._templates.setdefault(language, {}).update(entries)

    def languages(self) -> List[str]:
        return sorted(self._templates)

    def lookup(self, message_key: str, language: str) -> Optional[str]:
        entries = self._templates.get(language)
        if not entries:
            return None
        if message_key in entries:
            return entries[message_key]
        base = message_key.split(".", 1)[0]
        return entries.get(base)

    def __call__(self, message_key: str, language: str) -> Optional[str]:
        return self.lookup(message_key, language)


class _TemplateValues(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _render(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(to_text(v) for v in value)
    if isinstance(value, Mapping):
        return ", ".join(f"{k}={to_text(v)}" for k, v in value.items())
    return to_text(value)


class ResultAssembler:
    """Builds ``ValidationResult`` objects from evaluator outcomes.

    Attributes:
        resolver: Optional injected message resolver
        default_language: Language used when a template or label has no
            entry for the requested language
    """

    def __init__(
        self,
        resolver: Optional[Union[MessageResolver, Mapping[str, Mapping[str, str]]]] = None,
        default_language: str = DEFAULT_LANGUAGE,
    ) -> None:
        if isinstance(resolver, Mapping):
            resolver = MessageCatalog(resolver)
        self.resolver = resolver
        self.default_language = default_language

    def assemble(self, outcomes: Iterable[ValidationOutcome], language: Optional[str] = None) -> ValidationResult:
        """Concatenate failures in traversal order and resolve their messages."""
        language = language or self.default_language
        errors: List[FieldError] = []
        for outcome in outcomes:
            if outcome.skipped_by_condition:
                continue
            for failure in outcome.errors:
                errors.append(FieldError(
                    path=format_path(failure.path),
                    rule=failure.rule,
                    message=self.resolve_message(failure, outcome.node, language),
                    value=failure.value,
                ))
        return ValidationResult(valid=not errors, errors=errors)

    def _template(self, failure: RuleFailure, node: FieldSpec, language: str) -> str:
        template = node.message_for(failure.rule, language, self.default_language)
        if template is not None:
            return template
        if self.resolver is not None:
            for candidate in (language, self.default_language):
                template = self.resolver(failure.message_key, candidate)
                if template is not None:
                    return template
        logger.debug(
            "No %r template for %r; using built-in message",
            language,
            failure.message_key,
        )
        return failure.default_message or GENERIC_MESSAGE

    def resolve_message(self, failure: RuleFailure, node: FieldSpec, language: str) -> str:
        """Resolve and fill the message template for one failure."""
        template = self._template(failure, node, language)
        values = _TemplateValues()
        if isinstance(failure.arg, Mapping):
            values.update({str(k): _render(v) for k, v in failure.arg.items()})
        values.update({str(k): _render(v) for k, v in failure.params.items()})
        values.update(
            field=node.label_for(language, self.default_language),
            path=format_path(failure.path),
            rule=failure.rule,
            value=_render(failure.value),
            param=_render(failure.arg),
        )
        try:
            return template.format_map(values)
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            logger.debug("Cannot format message template %r: %s", template, e)
            return template


__all__ = [
    "DEFAULT_LANGUAGE",
    "MessageResolver",
    "ValidationResultDict",
    "ValidationResult",
    "MessageCatalog",
    "ResultAssembler",
]
