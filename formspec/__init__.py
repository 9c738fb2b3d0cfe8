"""FormSpec declarative form validation engine.

FormSpec validates nested form data against a declarative specification and
reports every failing field with a localized message. It provides:
- An immutable spec model compiled once and shared across calls
- Path expressions with array wildcards and relative references
- A pluggable rule registry with the common form rules built in
- Conditional fields that drop out of validation when switched off
- Message templates resolved per language by an injected catalog

Basic usage:
    >>> from formspec import validate
    >>> spec = {
    ...     "type": "group",
    ...     "properties": {"email": {"type": "email", "rules": {"required": True, "email": True}}},
    ... }
    >>> result = validate(spec, {"email": "not-an-email"})
    >>> print(result.errors[0].rule)
    email
"""

__version__ = "0.1.0"
__author__ = "FormSpec Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from formspec.errors import FieldError, SpecError, UnresolvedReferenceError
from formspec.model import FieldSpec, FormSpec
from formspec.results import MessageCatalog, ValidationResult
from formspec.rules import RuleContext, RuleOutcome, RuleRegistry, register_rule
from formspec.runtime import FormValidator, ValidatorOptions, validate

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "validate",
    "FormValidator",
    "ValidatorOptions",
    "FormSpec",
    "FieldSpec",
    "ValidationResult",
    "FieldError",
    "MessageCatalog",
    "RuleRegistry",
    "RuleContext",
    "RuleOutcome",
    "register_rule",
    "SpecError",
    "UnresolvedReferenceError",
]
