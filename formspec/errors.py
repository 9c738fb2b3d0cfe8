"""Error types for the form-spec validation engine.

Two families:

- Construction-time exceptions (``SpecError``, ``UnresolvedReferenceError``)
  describe a malformed specification. They are raised while building the
  spec model and must be fixed by the spec author before anything can be
  validated.
- Validation-time results (``FieldError``) are plain data. Bad or partial
  input never raises; every rule failure becomes a ``FieldError`` entry in
  the validation result, addressed by its bracket-notation path.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from typing_extensions import NotRequired, TypedDict


class SpecError(Exception):
    """Raised when a specification document cannot be turned into a spec model.

    Attributes:
        path: Bracket-notation path of the offending spec node ("" for the root),
            or None when the problem is not tied to a node
        message: Human-readable description of the problem

    Examples:
        >>> err = SpecError("group declares both 'properties' and 'items'", path="address")
        >>> str(err)
        "address: group declares both 'properties' and 'items'"
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        self.message = message
        if path is None:
            super().__init__(message)
        else:
            super().__init__(f"{path or '<root>'}: {message}")


class UnresolvedReferenceError(SpecError):
    """Raised when a condition or cross-field rule names a path that cannot be used.

    Covers references to fields that do not exist, references that need an
    array index the referring node does not have, and condition references
    that point at the node itself, its ancestors, its descendants, or below
    its own group level.

    Attributes:
        reference: The reference expression as written in the spec
        path: Bracket-notation path of the node holding the reference
    """

    def __init__(self, reference: str, path: Optional[str], message: str):
        self.reference = reference
        super().__init__(f"cannot resolve reference '{reference}': {message}", path=path)


class FieldErrorDict(TypedDict):
    """Wire shape of a single entry in ``ValidationResult.errors``."""
    path: str
    rule: str
    message: str
    value: NotRequired[Any]


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error.

    Attributes:
        path: Bracket-notation field path (e.g., "contact.email", "tags[1]")
        rule: Name of the rule that failed (e.g., "required", "match")
        message: Message resolved for the requested language
        value: Optional - the raw value that failed (None when absent)

    Examples:
        >>> err = FieldError(path="tags[1]", rule="required", message="Tags is required")
        >>> err.to_dict()
        {'path': 'tags[1]', 'rule': 'required', 'message': 'Tags is required'}
    """
    path: str
    rule: str
    message: str
    value: Optional[Any] = None

    def to_dict(self, include_value: bool = False) -> FieldErrorDict:
        """Convert to dict for serialization.

        The value is left out by default; it is not part of the compared
        conformance output and may hold user input.
        """
        result: FieldErrorDict = {
            "path": self.path,
            "rule": self.rule,
            "message": self.message,
        }
        if include_value and self.value is not None:
            result["value"] = self.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        return cls(
            path=data["path"],
            rule=data["rule"],
            message=data["message"],
            value=data.get("value"),
        )


__all__ = [
    "SpecError",
    "UnresolvedReferenceError",
    "FieldErrorDict",
    "FieldError",
]
