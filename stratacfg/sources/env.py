"""Environment layer: declared variable names read from an environment view."""

from collections.abc import Mapping
from typing import Any

from stratacfg.schema import SCALAR, Schema

from .convert import convert_field


def env_overlay(
    schema: Schema,
    environ: Mapping[str, str],
    prefix: str = "",
    path: str = "",
) -> dict[str, Any]:
    """
    Build the overlay of environment values for one structure level.

    Unset and empty variables contribute nothing, so they never blank out a
    value set by an earlier layer.

    Args:
        schema: Schema of the structure
        environ: Environment view (process environment plus dotenv files)
        prefix: Prepended to every declared variable name
        path: Dotted prefix of the structure, for error context

    Raises:
        ParseError: If a variable's value does not fit its field type
    """
    overlay: dict[str, Any] = {}
    for fd in schema.fields:
        if fd.kind != SCALAR or fd.env is None:
            continue
        name = prefix + fd.env
        raw = environ.get(name)
        if raw is None or raw == "":
            continue
        overlay[fd.name] = convert_field(raw, fd.type, path + fd.name, f"env:{name}")
    return overlay
