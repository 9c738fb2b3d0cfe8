"""FormValidator orchestrator for the form-spec validation engine.

This module provides the FormValidator class that coordinates the spec model,
evaluator, rule registry and result assembler, and the module-level
``validate`` function that is the engine's public operation.

A FormValidator compiles its spec once and can then validate any number of
inputs, from any number of threads. Each call is a pure function of
``(spec, data, language)``; neither input is modified.

Usage:
    >>> from formspec.runtime import FormValidator
    >>> spec = {
    ...     "type": "group",
    ...     "properties": {
    ...         "password": {"type": "password", "rules": {"required": True}},
    ...         "password_confirm": {"type": "password", "rules": {"match": "password"}},
    ...     },
    ... }
    >>> validator = FormValidator(spec)
    >>> result = validator.validate({"password": "x", "password_confirm": "y"})
    >>> result.valid
    False
    >>> result.errors[0].path, result.errors[0].rule
    ('password_confirm', 'match')
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from formspec.errors import FieldError
from formspec.model import FormSpec
from formspec.paths import format_path, parse_path
from formspec.results import DEFAULT_LANGUAGE, MessageResolver, ResultAssembler, ValidationResult
from formspec.rules import RuleRegistry
from formspec.validation import Evaluator

logger = logging.getLogger(__name__)

SpecDocument = Mapping[str, Any]


@dataclass(frozen=True)
class ValidatorOptions:
    """Configuration for a FormValidator.

    Attributes:
        default_language: Language used when none is requested, and the
            fallback for labels and message templates
        implicit_type_rules: Run the ``number`` rule first on ``number``
            fields that do not declare it
    """
    default_language: str = DEFAULT_LANGUAGE
    implicit_type_rules: bool = True


class FormValidator:
    """Validates data against one compiled form specification.

    Attributes:
        spec: The compiled spec model
        registry: Rule registry used to build and evaluate the spec
        options: Validator configuration

    Examples:
        >>> spec = {"type": "group", "properties": {"email": {"type": "email", "rules": {"email": True}}}}
        >>> FormValidator(spec).validate({}).valid
        True
    """

    def __init__(
        self,
        spec: Union[FormSpec, SpecDocument],
        registry: Optional[RuleRegistry] = None,
        messages: Optional[Union[MessageResolver, Mapping[str, Mapping[str, str]]]] = None,
        options: Optional[ValidatorOptions] = None,
    ) -> None:
        """Compile the spec (if needed) and prepare the validation pipeline.

        Args:
            spec: A parsed spec document or an already-built FormSpec
            registry: Rule registry; defaults to the FormSpec's own registry,
                or the process-wide default registry for documents
            messages: Message resolver callable, or a mapping
                language -> message key -> template
            options: Validator configuration

        Raises:
            SpecError: If the spec document is invalid
            UnresolvedReferenceError: If a spec reference cannot be resolved
        """
        if isinstance(spec, FormSpec):
            self.spec = spec
        else:
            self.spec = FormSpec.from_dict(spec, registry=registry)
        self.registry = registry if registry is not None else self.spec.registry
        self.options = options or ValidatorOptions()
        self._evaluator = Evaluator(
            self.spec,
            registry=self.registry,
            implicit_type_rules=self.options.implicit_type_rules,
        )
        self._assembler = ResultAssembler(messages, default_language=self.options.default_language)

    def validate(self, data: Any, language: Optional[str] = None) -> ValidationResult:
        """Validate data against the spec.

        Args:
            data: The data tree (mappings, sequences, scalars); any shape is
                accepted, mismatches read as absent values
            language: Language tag for messages and labels

        Returns:
            ValidationResult with the verdict and ordered errors
        """
        language = language or self.options.default_language
        outcomes = self._evaluator.evaluate(data, language=language)
        result = self._assembler.assemble(outcomes, language=language)
        logger.debug(
            "Validated %d nodes: %s (%d errors)",
            len(outcomes),
            "valid" if result.valid else "invalid",
            len(result.errors),
        )
        return result

    def validate_field(self, path: str, data: Any, language: Optional[str] = None) -> Optional[FieldError]:
        """Validate data and return the error for one concrete path, if any.

        Conditions and cross-field rules see the whole of ``data``, exactly
        as in a full validation.

        Raises:
            ValueError: If ``path`` is not well-formed bracket notation
        """
        canonical = format_path(parse_path(path))
        return self.validate(data, language=language).error_for(canonical)


def validate(
    spec: Union[FormSpec, SpecDocument],
    data: Any,
    language: str = DEFAULT_LANGUAGE,
    registry: Optional[RuleRegistry] = None,
    messages: Optional[Union[MessageResolver, Mapping[str, Mapping[str, str]]]] = None,
) -> ValidationResult:
    """Validate ``data`` against ``spec`` in one call.

    Compiles the spec on every call; build a FormValidator to reuse it.

    Examples:
        >>> spec = {"type": "group", "properties": {
        ...     "tags": {"type": "array", "items": {"type": "text", "rules": {"required": True}}}}}
        >>> [(e.path, e.rule) for e in validate(spec, {"tags": ["a", "", "c"]}).errors]
        [('tags[1]', 'required')]
    """
    return FormValidator(spec, registry=registry, messages=messages).validate(data, language=language)


__all__ = [
    "SpecDocument",
    "ValidatorOptions",
    "FormValidator",
    "validate",
]
