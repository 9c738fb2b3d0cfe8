"""Value normalization shared by conditions and rules.

Every implementation of the engine has to agree on what "empty", "numeric"
and "equal" mean for loosely typed form input (numeric strings, booleans from
checkboxes, whitespace-only text), so the coercions live in one place.
"""

import math
import re
from typing import Any, Mapping, Optional

from formspec.paths import MISSING

# Optional sign, then digits with an optional decimal point (no exponent,
# no trailing garbage such as "12abc").
_NUMERIC = re.compile(r"^[-+]?(\d+\.?\d*|\d*\.?\d+)$")


def is_empty(value: Any) -> bool:
    """Absent, null, blank text, or an empty collection.

    ``False`` and ``0`` are present values.

    Examples:
        >>> is_empty("   ")
        True
        >>> is_empty(0), is_empty(False)
        (False, False)
    """
    if value is None or value is MISSING:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, Mapping)):
        return len(value) == 0
    return False


def to_number(value: Any) -> Optional[float]:
    """Strict numeric reading: numbers and complete numeric strings only.

    Booleans are not numbers here.

    Examples:
        >>> to_number(" 12.5 ")
        12.5
        >>> to_number("12abc") is None
        True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text in ("Infinity", "-Infinity"):
            return float(text.replace("Infinity", "inf"))
        if _NUMERIC.match(text):
            return float(text)
    return None


def to_comparable_number(value: Any) -> Optional[float]:
    """Lenient numeric reading used by comparisons: booleans count as 1/0."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    return to_number(value)


def to_text(value: Any) -> str:
    """Canonical string form of a scalar.

    Integral floats drop the fraction so that ``1.0`` and ``"1"`` agree.

    Examples:
        >>> to_text(1.0), to_text(True), to_text(None)
        ('1', 'true', '')
    """
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def loose_equals(left: Any, right: Any) -> bool:
    """Equality across the loose types form input arrives in.

    Absent/null only equals absent/null. Values of the same type compare
    directly; otherwise when both read as numbers they compare numerically,
    and failing that by their string forms.

    Examples:
        >>> loose_equals("1", 1)
        True
        >>> loose_equals("0", "1")
        False
        >>> loose_equals(None, "")
        False
    """
    left_absent = left is None or left is MISSING
    right_absent = right is None or right is MISSING
    if left_absent or right_absent:
        return left_absent and right_absent
    if type(left) is type(right):
        return left == right
    left_number = to_comparable_number(left)
    right_number = to_comparable_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return to_text(left) == to_text(right)


def char_length(value: Any) -> int:
    """Length in characters of a value's string form."""
    return len(to_text(value))


__all__ = [
    "is_empty",
    "to_number",
    "to_comparable_number",
    "to_text",
    "loose_equals",
    "char_length",
]
