"""
DSN placeholder expansion.

Expansion is a single left-to-right pass: each placeholder is replaced by
its resolved text and resolved text is never scanned again, so a secret
containing "${...}" is emitted verbatim.
"""

from __future__ import annotations

import datetime
import enum
import os
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from stratacfg.exceptions import (
    DsnSyntaxError,
    ResolutionError,
    UnknownSchemeError,
    UnresolvedReferenceError,
)

from .registry import ResolverRegistry
from .scanner import ENV, FIELD, Literal, Placeholder, parse_ref, scan

if TYPE_CHECKING:
    from stratacfg.schema import Schema


def expand(
    template: str,
    fields: Mapping[str, str],
    registry: ResolverRegistry,
    environ: Mapping[str, str] | None = None,
    field: str | None = None,
) -> str:
    """
    Expand every ${...} placeholder in a DSN template.

    Args:
        template: Template string
        fields: Finalized values of the owning structure, by dotted name
        registry: Resolvers for ${ref:scheme:...} placeholders
        environ: Environment for ${env:KEY} (default: os.environ)
        field: Name of the field being expanded, for error context

    Returns:
        The expanded string

    Raises:
        UnresolvedReferenceError: A field reference is not in fields
        UnknownSchemeError: A ref: scheme has no registered resolver
        ResolutionError: A resolver failed
    """
    env = environ if environ is not None else os.environ
    parts: list[str] = []
    for token in scan(template):
        if isinstance(token, Literal):
            parts.append(token.text)
        else:
            parts.append(_resolve(token, fields, registry, env, field))
    return "".join(parts)


def _resolve(
    token: Placeholder,
    fields: Mapping[str, str],
    registry: ResolverRegistry,
    environ: Mapping[str, str],
    field: str | None,
) -> str:
    if token.kind == FIELD:
        if token.body not in fields:
            raise UnresolvedReferenceError(
                f"unknown field '{token.body}'", field=field, placeholder=token.raw
            )
        return fields[token.body]

    if token.kind == ENV:
        return environ.get(token.body, "")

    text = resolve_ref(token.body, registry, field=field, placeholder=token.raw)
    assert text is not None
    return text


def resolve_ref(
    uri: str,
    registry: ResolverRegistry,
    field: str | None = None,
    placeholder: str | None = None,
    missing_ok: bool = False,
) -> str | None:
    """
    Fetch the text a "scheme:///path#fragment" URI refers to.

    Content is decoded as UTF-8 and stripped of surrounding whitespace.

    Args:
        missing_ok: Return None instead of raising when the resolver reports
            FileNotFoundError

    Raises:
        UnknownSchemeError: The scheme has no registered resolver
        ResolutionError: The resolver failed or returned undecodable bytes
    """
    placeholder = placeholder or uri
    try:
        ref = parse_ref(uri)
    except DsnSyntaxError as e:
        # Templates are checked by describe(); this is a URI taken from data
        raise ResolutionError(e.message, field=field, placeholder=placeholder) from e
    resolver = registry.lookup(ref.scheme)
    if resolver is None:
        raise UnknownSchemeError(
            f"no resolver registered for scheme '{ref.scheme}'",
            field=field,
            placeholder=placeholder,
        )
    try:
        content = resolver(ref.path, ref.fragment)
        if isinstance(content, bytes):
            content = content.decode("utf-8")
    except Exception as e:
        if missing_ok and isinstance(e, FileNotFoundError):
            return None
        raise ResolutionError(
            f"resolver '{ref.scheme}' failed: {e}",
            field=field,
            placeholder=placeholder,
        ) from e
    return str(content).strip()


def format_value(value: Any) -> str:
    """Render a field value the way it appears inside a DSN."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, datetime.timedelta):
        secs = value.total_seconds()
        return str(int(secs)) if secs.is_integer() else str(secs)
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(format_value(v) for v in value)
    return str(value)


def field_values(obj: Any, schema: Schema, prefix: str = "") -> dict[str, str]:
    """
    Flatten an object's scalar fields into the map expand() reads.

    Nested structures contribute dotted names ("database.host"); collections
    of structures are not addressable.
    """
    from stratacfg.schema import SCALAR, STRUCT

    values: dict[str, str] = {}
    for fd in schema.fields:
        value = getattr(obj, fd.name, None)
        if fd.kind == SCALAR:
            values[prefix + fd.name] = format_value(value)
        elif fd.kind == STRUCT and value is not None and fd.nested is not None:
            values.update(field_values(value, fd.nested, prefix + fd.name + "."))
    return values
