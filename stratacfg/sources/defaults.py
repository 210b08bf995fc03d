"""Defaults layer: declared default literals converted to field types."""

from typing import Any

from stratacfg.schema import SCALAR, Schema
from stratacfg.schema.typeinfo import is_unset

from .convert import convert_field


def defaults_overlay(schema: Schema, path: str = "") -> dict[str, Any]:
    """
    Build the overlay of declared defaults for one structure level.

    Args:
        schema: Schema of the structure
        path: Dotted prefix of the structure, for error context

    Raises:
        ParseError: If a default literal does not fit its field type
    """
    overlay: dict[str, Any] = {}
    for fd in schema.fields:
        if fd.kind != SCALAR or not fd.has_default:
            continue
        raw = fd.default_value()
        if is_unset(raw):
            continue
        overlay[fd.name] = convert_field(raw, fd.type, path + fd.name, "default")
    return overlay
