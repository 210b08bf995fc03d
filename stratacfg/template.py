"""
Document templating applied before the structured file is parsed.

MustacheRenderer substitutes {{ path.to.value }} and {{ path | "fallback" }}
placeholders against a data object. Paths walk dicts by key, sequences by
index and other objects by public attribute.
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from stratacfg.exceptions import TemplateError

MISSING_ERROR = "error"
MISSING_EMPTY = "empty"

_UNRESOLVED = object()


class Renderer(Protocol):
    """Renders a raw document against template data."""

    def render(self, template: bytes, data: Any) -> bytes: ...


def resolve_path(obj: Any, path: str) -> Any:
    """
    Resolve a dotted path against nested dicts, sequences and objects.

    Returns a sentinel when any segment is missing. Segments starting with an
    underscore are rejected.
    """
    current = obj
    for segment in path.split("."):
        if not segment:
            raise TemplateError("empty path segment", path=path)
        if segment.startswith("_"):
            raise TemplateError("private path segment", path=path, segment=segment)

        if isinstance(current, Mapping):
            if segment not in current:
                return _UNRESOLVED
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not segment.isdigit() or int(segment) >= len(current):
                return _UNRESOLVED
            current = current[int(segment)]
        elif current is not None and hasattr(current, segment):
            current = getattr(current, segment)
        else:
            return _UNRESOLVED
    return current


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class MustacheRenderer:
    """
    Minimal mustache-style substitution.

    Example:
        renderer = MustacheRenderer()
        renderer.render(b"port: {{ db.port }}", {"db": {"port": 5432}})
        # b"port: 5432"

    Args:
        delimiters: Opening and closing delimiters
        missing: "error" to fail on unresolved paths without a fallback,
            "empty" to substitute an empty string
    """

    def __init__(
        self,
        delimiters: tuple[str, str] = ("{{", "}}"),
        missing: str = MISSING_ERROR,
    ) -> None:
        left, right = delimiters
        if not left or not right:
            raise ValueError("template delimiters cannot be empty")
        if missing not in (MISSING_ERROR, MISSING_EMPTY):
            raise ValueError(f"unknown missing-key policy '{missing}'")
        self.delimiters = (left, right)
        self.missing = missing
        self._pattern = re.compile(
            r"(\\)?"
            + re.escape(left)
            + r"\s*([^|]+?)\s*(?:\|\s*\"([^\"]*)\"\s*)?"
            + re.escape(right)
        )

    def render(self, template: bytes, data: Any) -> bytes:
        try:
            text = template.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TemplateError(f"template is not valid UTF-8: {e}") from e
        return self._pattern.sub(lambda m: self._substitute(m, data), text).encode()

    def _substitute(self, match: re.Match[str], data: Any) -> str:
        if match.group(1):
            return match.group(0)[1:]
        path, fallback = match.group(2), match.group(3)
        value = resolve_path(data, path)
        if value is _UNRESOLVED or value is None:
            if fallback is not None:
                return fallback
            if self.missing == MISSING_EMPTY:
                return ""
            raise TemplateError("unresolved template placeholder", path=path)
        return _format(value)
