"""Path addressing for spec trees and data trees.

A path is a tuple of segments: ``str`` for a field name, ``int`` for an array
index. Its external form is bracket notation (``a.b[2].c``), used only at the
system boundary; evaluation works on tuples.

Spec nodes are addressed by *templates*, paths whose array levels hold the
``ANY_INDEX`` marker (``groups[*].name``). References written in a spec
(conditions, cross-field rules) are resolved against the spec tree into a
template once, when the spec model is built, and bound to a concrete path on
every validation call by filling ``ANY_INDEX`` from the referring node's own
indices.

Reference grammar:
    ``.x``       sibling of the referring field
    ``..x``      sibling of the enclosing group (one more dot per level)
    ``a.b``      absolute from the root; array levels are filled in
    ``a[*].b``   explicit "same element" marker (``a[].b`` is equivalent)
    ``a[0].b``   explicit index, kept literally
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

from formspec.errors import UnresolvedReferenceError
from formspec.types import FieldKind

logger = logging.getLogger(__name__)


class _AnyIndex:
    """Marker for "the index of the enclosing array element" in templates."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ANY_INDEX"


class _Missing:
    """Marker for a value that is not present in the data tree at all."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


ANY_INDEX = _AnyIndex()
MISSING = _Missing()

Segment = Union[str, int, _AnyIndex]
Path = Tuple[Segment, ...]

_TOKEN = re.compile(r"\[(\d*|\*)\]|([^.\[\]]+)")


def _split_segments(text: str, allow_wildcards: bool) -> Path:
    segments: List[Segment] = []
    pos = 0
    expect_name = True
    while pos < len(text):
        if text[pos] == ".":
            if expect_name:
                raise ValueError(f"empty segment at position {pos} in {text!r}")
            expect_name = True
            pos += 1
            continue
        match = _TOKEN.match(text, pos)
        if match is None:
            raise ValueError(f"unexpected {text[pos]!r} at position {pos} in {text!r}")
        index, name = match.group(1), match.group(2)
        if name is not None:
            if not expect_name:
                raise ValueError(f"missing '.' before {name!r} in {text!r}")
            segments.append(name)
            expect_name = False
        else:
            if expect_name:
                raise ValueError(f"index without a field name at position {pos} in {text!r}")
            if index.isdigit():
                segments.append(int(index))
            elif allow_wildcards:
                segments.append(ANY_INDEX)
            else:
                raise ValueError(f"wildcard index not allowed in concrete path {text!r}")
        pos = match.end()
    if expect_name and segments:
        raise ValueError(f"trailing '.' in {text!r}")
    return tuple(segments)


def parse_path(text: str) -> Path:
    """Parse bracket notation into a concrete path.

    Examples:
        >>> parse_path("groups[2].name")
        ('groups', 2, 'name')
        >>> parse_path("")
        ()

    Raises:
        ValueError: If the text is not well-formed bracket notation
    """
    return _split_segments(text, allow_wildcards=False)


def format_path(path: Path) -> str:
    """Render a path or template in bracket notation.

    Examples:
        >>> format_path(("groups", 2, "name"))
        'groups[2].name'
        >>> format_path(("tags", ANY_INDEX))
        'tags[*]'
    """
    parts: List[str] = []
    for segment in path:
        if segment is ANY_INDEX:
            parts.append("[*]")
        elif isinstance(segment, int):
            parts.append(f"[{segment}]")
        else:
            parts.append(f".{segment}" if parts else segment)
    return "".join(parts)


@dataclass(frozen=True)
class Reference:
    """A parsed reference expression.

    Attributes:
        expression: The expression as written in the spec
        segments: Path segments after the leading dots
        levels_up: None for absolute references; otherwise the number of
            group levels to climb above the referring field's own group
    """
    expression: str
    segments: Path
    levels_up: Optional[int] = None

    @property
    def is_relative(self) -> bool:
        return self.levels_up is not None


def parse_reference(expression: str) -> Reference:
    """Parse a reference expression.

    Examples:
        >>> parse_reference(".password").levels_up
        0
        >>> parse_reference("..has_options").segments
        ('has_options',)
        >>> parse_reference("groups[].name").segments
        ('groups', ANY_INDEX, 'name')

    Raises:
        ValueError: If the expression is empty or malformed
    """
    text = expression.strip()
    body = text.lstrip(".")
    dots = len(text) - len(body)
    if not body:
        raise ValueError(f"empty reference {expression!r}")
    segments = _split_segments(body, allow_wildcards=True)
    return Reference(
        expression=expression,
        segments=segments,
        levels_up=dots - 1 if dots else None,
    )


def strip_indices(path: Path) -> Path:
    """Drop trailing index segments."""
    end = len(path)
    while end and not isinstance(path[end - 1], str):
        end -= 1
    return path[:end]


def container_of(path: Path) -> Path:
    """Path of the group holding the field at ``path``.

    For a field inside an array element this is the element itself
    (``groups[*].name`` -> ``groups[*]``); for an array item of scalars it is
    the group holding the array (``tags[*]`` -> ``()``).
    """
    return strip_indices(path)[:-1]


def shape(path: Path) -> Path:
    """Replace every index with ``ANY_INDEX``, keeping field names."""
    return tuple(ANY_INDEX if not isinstance(s, str) else s for s in path)


def is_prefix(prefix: Path, path: Path) -> bool:
    return len(prefix) <= len(path) and path[:len(prefix)] == prefix


def bind(template: Path, base: Path) -> Optional[Path]:
    """Fill each ``ANY_INDEX`` in ``template`` from the concrete ``base`` path.

    An index can only be filled when ``base`` passes through the same array
    element, i.e. everything bound so far is a prefix of ``base``.

    Returns:
        The concrete path, or None when the template enters an array that
        ``base`` is not inside

    Examples:
        >>> bind(("groups", ANY_INDEX, "title"), ("groups", 3, "name"))
        ('groups', 3, 'title')
        >>> bind(("has_options",), ("groups", 3, "name"))
        ('has_options',)
    """
    result: List[Segment] = []
    for i, segment in enumerate(template):
        if segment is ANY_INDEX:
            if len(base) > i and isinstance(base[i], int) and tuple(result) == base[:i]:
                result.append(base[i])
            else:
                return None
        else:
            result.append(segment)
    return tuple(result)


def is_bindable(template: Path, base_template: Path) -> bool:
    """Static counterpart of ``bind``: can every validation call bind ``template``?"""
    for i, segment in enumerate(template):
        if segment is ANY_INDEX:
            if len(base_template) <= i or isinstance(base_template[i], str):
                return False
            if shape(template[:i]) != shape(base_template[:i]):
                return False
    return True


def get_value(data: Any, path: Path) -> Any:
    """Read the raw value at a concrete path, or ``MISSING``.

    Shape mismatches (indexing into a scalar, a name lookup on a list) read
    as ``MISSING`` rather than raising.
    """
    current = data
    for segment in path:
        if isinstance(segment, str):
            if isinstance(current, Mapping) and segment in current:
                current = current[segment]
            else:
                return MISSING
        elif isinstance(segment, int) and isinstance(current, (list, tuple)):
            if 0 <= segment < len(current):
                current = current[segment]
            else:
                return MISSING
        else:
            return MISSING
    return current


class PathResolver:
    """Resolves reference expressions against a spec tree.

    Works on any node exposing ``kind``, ``properties`` (mapping of name to
    node) and ``items``; the spec model passes its root ``FieldSpec``.

    Examples:
        >>> from formspec.model import FormSpec
        >>> spec = FormSpec.from_dict({"type": "group", "properties": {
        ...     "password": {"type": "password"},
        ...     "password_confirm": {"type": "password"}}})
        >>> resolver = PathResolver(spec.root)
        >>> resolver.resolve(".password", ("password_confirm",))
        ('password',)
    """

    def __init__(self, root: Any) -> None:
        self.root = root

    def node_at(self, template: Path) -> Any:
        """Return the spec node addressed by ``template``, or None."""
        node = self.root
        for segment in template:
            if isinstance(segment, str):
                if node.kind is not FieldKind.GROUP or segment not in node.properties:
                    return None
                node = node.properties[segment]
            else:
                if node.kind is not FieldKind.ARRAY:
                    return None
                node = node.items
        return node

    def resolve(self, reference: Union[str, Reference], base: Path) -> Path:
        """Resolve ``reference`` as written on the node at template ``base``.

        Returns:
            The template of the referenced node

        Raises:
            UnresolvedReferenceError: If the expression is malformed, climbs
                above the root, or names a field the spec does not declare
        """
        if isinstance(reference, str):
            try:
                reference = parse_reference(reference)
            except ValueError as e:
                raise UnresolvedReferenceError(reference, format_path(base), str(e)) from e

        if reference.levels_up is None:
            start: Path = ()
        else:
            start = container_of(base)
            for _ in range(reference.levels_up):
                if not strip_indices(start):
                    raise UnresolvedReferenceError(
                        reference.expression,
                        format_path(base),
                        "climbs above the root group",
                    )
                start = container_of(start)

        node = self.node_at(start)
        path: List[Segment] = list(start)
        for segment in reference.segments:
            if isinstance(segment, str):
                if node.kind is FieldKind.ARRAY:
                    path.append(ANY_INDEX)
                    node = node.items
                if node.kind is not FieldKind.GROUP or segment not in node.properties:
                    raise UnresolvedReferenceError(
                        reference.expression,
                        format_path(base),
                        f"no field '{segment}' under '{format_path(tuple(path)) or '<root>'}'",
                    )
                node = node.properties[segment]
            else:
                if node.kind is not FieldKind.ARRAY:
                    raise UnresolvedReferenceError(
                        reference.expression,
                        format_path(base),
                        f"'{format_path(tuple(path))}' is not an array",
                    )
                node = node.items
            path.append(segment)

        resolved = tuple(path)
        logger.debug(
            "Resolved reference %r at %s to %s",
            reference.expression,
            format_path(base) or "<root>",
            format_path(resolved),
        )
        return resolved


__all__ = [
    "ANY_INDEX",
    "MISSING",
    "Segment",
    "Path",
    "parse_path",
    "format_path",
    "Reference",
    "parse_reference",
    "strip_indices",
    "container_of",
    "shape",
    "is_prefix",
    "bind",
    "is_bindable",
    "get_value",
    "PathResolver",
]
