"""
Structured-file layer.

Reads a document from disk, parses it into a tree of mappings, sequences and
scalars, and walks that tree by each field's source key.
"""

import copy
import datetime
import logging
import os
from collections.abc import Callable, Hashable, Mapping
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from stratacfg.constants import MAX_CONFIG_SIZE_BYTES
from stratacfg.exceptions import FileFormatError, SourceError
from stratacfg.schema import SCALAR, Schema
from stratacfg.schema.typeinfo import is_unset

from .convert import convert_field

Parser = Callable[[bytes], Any]

_lg = logging.getLogger("stratacfg.sources")


class _Loader(yaml.SafeLoader):
    """Safe loader that turns date and numeric mapping keys into strings."""

    def construct_mapping(self, node: Any, deep: bool = False) -> dict[Hashable, Any]:
        mapping = super().construct_mapping(node, deep=deep)
        for key in list(mapping.keys()):
            converted = _convert_key(key)
            if converted != key:
                mapping[converted] = mapping.pop(key)
        return mapping


def _convert_key(key: Any) -> Any:
    if isinstance(key, datetime.date):
        return str(key)
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, (int, float)) or key is None:
        return str(key)
    return key


def yaml_parser(data: bytes) -> Any:
    """Parse a YAML (or JSON) document."""
    return yaml.load(data, Loader=_Loader)  # noqa: S506


def _check_file_size(path: Path) -> None:
    """Check file size limit to prevent unbounded reads."""
    file_size = os.path.getsize(path)
    if file_size > MAX_CONFIG_SIZE_BYTES:
        raise SourceError(
            f"configuration file is {file_size} bytes, exceeding maximum size of "
            f"{MAX_CONFIG_SIZE_BYTES} bytes "
            f"({MAX_CONFIG_SIZE_BYTES // (1024 * 1024)} MB)",
            path=str(path),
        )


def read_source(path: str | os.PathLike[str], required: bool = True) -> bytes | None:
    """
    Read a configuration document.

    Args:
        path: File path
        required: Whether a missing file is an error

    Returns:
        File contents, or None if the file is missing and not required

    Raises:
        SourceError: If the file is missing (and required), unreadable or too big
    """
    fpath = Path(path)
    if not fpath.exists():
        if required:
            raise SourceError("configuration file not found", path=str(fpath))
        _lg.debug("optional configuration file missing", extra={"path": str(fpath)})
        return None
    try:
        _check_file_size(fpath)
        return fpath.read_bytes()
    except OSError as e:
        raise SourceError(
            f"cannot read configuration file: {e}", path=str(fpath)
        ) from e


def parse_tree(
    data: bytes | None, name: str = "<source>", parser: Parser | None = None
) -> dict[str, Any]:
    """
    Parse document bytes into a mapping tree.

    Args:
        data: Raw document (None or blank means an empty document)
        name: Source name for error context
        parser: Parser collaborator (default: YAML)

    Raises:
        FileFormatError: If parsing fails or the document is not a mapping
    """
    if data is None or not data.strip():
        return {}
    parse = parser or yaml_parser
    try:
        tree = parse(data)
    except Exception as e:
        raise FileFormatError(f"cannot parse document: {e}", source=name) from e
    if tree is None:
        return {}
    if not isinstance(tree, Mapping):
        raise FileFormatError(
            f"document root must be a mapping, got {type(tree).__name__}",
            source=name,
        )
    return dict(tree)


def apply_overrides(
    tree: Mapping[str, Any], overrides: Mapping[str, Any]
) -> dict[str, Any]:
    """
    Return a copy of tree with dotted-key overrides applied.

    Example:
        apply_overrides({"db": {"port": 1}}, {"db.port": 2})  # {"db": {"port": 2}}
    """
    result = copy.deepcopy(dict(tree))
    for dotted, value in overrides.items():
        parts = dotted.split(".")
        cursor = result
        for part in parts[:-1]:
            child = cursor.get(part)
            if not isinstance(child, dict):
                child = {}
                cursor[part] = child
            cursor = child
        cursor[parts[-1]] = value
    return result


def subtree(tree: Mapping[str, Any], key: str) -> Any:
    """Return the value under key, or None when absent."""
    return tree.get(key) if isinstance(tree, Mapping) else None


def file_overlay(
    schema: Schema,
    tree: Mapping[str, Any],
    path: str = "",
    lg: logging.Logger | None = None,
) -> dict[str, Any]:
    """
    Build the overlay of scalar values found in a parsed tree.

    Nested structures are not included; the loader recurses into them with
    subtree().

    Args:
        schema: Schema of the structure
        tree: Mapping for this structure level
        path: Dotted prefix of the structure, for error context
        lg: Logger for unknown-key notices

    Raises:
        ParseError: If a value does not fit its field type
    """
    lg = lg or _lg
    known = {fd.key for fd in schema.fields}
    for key in tree:
        if key not in known:
            lg.debug(
                "ignoring unknown configuration key",
                extra={"key": path + str(key), "target": schema.name},
            )

    overlay: dict[str, Any] = {}
    for fd in schema.fields:
        if fd.kind != SCALAR or fd.key not in tree:
            continue
        raw = tree[fd.key]
        if is_unset(raw):
            continue
        overlay[fd.name] = convert_field(raw, fd.type, path + fd.name, "file")
    return overlay
