"""
Schema introspection for configuration dataclasses.

describe() walks a dataclass once, validates its field declarations and
returns an immutable Schema. Results are cached process-wide by class
identity; concurrent first calls for the same class build it exactly once.
"""

from __future__ import annotations

import dataclasses
import threading
import typing
from dataclasses import MISSING
from typing import Any

from stratacfg.constants import SETTING_METADATA_KEY
from stratacfg.dsn.scanner import references
from stratacfg.exceptions import SchemaError

from .fields import (
    HOOK_NAME,
    SCALAR,
    STRUCT,
    STRUCT_LIST,
    STRUCT_MAP,
    FieldDescriptor,
    Schema,
    Setting,
)
from .typeinfo import is_struct, struct_element, unwrap_optional

_cache: dict[type, Schema] = {}
_lock = threading.RLock()
_building: list[type] = []


def describe(cls: type) -> Schema:
    """
    Return the cached Schema for a configuration dataclass.

    Args:
        cls: A dataclass type

    Returns:
        The Schema for cls, built on first use

    Raises:
        SchemaError: If cls is not a dataclass or its declarations are invalid
    """
    if not isinstance(cls, type):
        raise SchemaError("configuration target must be a dataclass type", target=cls)
    schema = _cache.get(cls)
    if schema is not None:
        return schema

    with _lock:
        schema = _cache.get(cls)
        if schema is None:
            schema = _build_schema(cls)
            _cache[cls] = schema
    return schema


def clear_cache() -> None:
    """Drop every cached schema. Intended for tests."""
    with _lock:
        _cache.clear()


def _build_schema(cls: type) -> Schema:
    if not is_struct(cls):
        raise SchemaError("configuration target must be a dataclass type", target=cls)
    if cls in _building:
        chain = " -> ".join(t.__name__ for t in (*_building, cls))
        raise SchemaError("configuration class contains itself", chain=chain)

    _building.append(cls)
    try:
        hints = _type_hints(cls)
        fields = tuple(
            _describe_field(cls, f, hints[f.name])
            for f in dataclasses.fields(cls)
            if f.init
        )
        schema = Schema(
            type=cls,
            fields=fields,
            has_hook=callable(getattr(cls, HOOK_NAME, None)),
        )
        _check_keys(schema)
        _check_dsn_references(schema)
        _check_refs(schema)
        frozen = cls.__dataclass_params__.frozen  # type: ignore[attr-defined]
        if (schema.dsn_fields or schema.ref_fields) and frozen:
            raise SchemaError(
                "DSN and ref fields are written after construction; "
                "the dataclass cannot be frozen",
                target=cls.__name__,
            )
        return schema
    finally:
        _building.pop()


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError) as e:
        raise SchemaError(
            f"cannot resolve field annotations: {e}", target=cls.__name__
        ) from e


def _describe_field(cls: type, f: dataclasses.Field, tp: Any) -> FieldDescriptor:
    decl = f.metadata.get(SETTING_METADATA_KEY)
    inner, optional = unwrap_optional(tp)

    if decl is None:
        decl = Setting()
        default, factory = f.default, f.default_factory
    else:
        default, factory = decl.default, None
    factory = None if factory is MISSING else factory

    where = f"{cls.__name__}.{f.name}"
    if decl.key is not None and not decl.key:
        raise SchemaError("source key cannot be empty", field=where)
    if decl.dsn is not None and (default is not MISSING or factory is not None):
        raise SchemaError(
            "field declares both a default and a DSN template", field=where
        )
    if decl.dsn is not None and inner is not str:
        raise SchemaError("DSN fields must be declared as str", field=where)
    if decl.dsn is not None and (decl.ref is not None or decl.ref_from is not None):
        raise SchemaError("field declares both a DSN template and a ref", field=where)
    if decl.ref is not None and not decl.ref.strip():
        raise SchemaError("ref cannot be empty", field=where)

    kind, nested = _nested_kind(inner)
    if kind != SCALAR:
        sourced = (decl.env, decl.dsn, decl.ref, decl.ref_from)
        if any(s is not None for s in sourced):
            raise SchemaError(
                "nested structure fields cannot declare env, dsn or ref",
                field=where,
            )
        # A nested structure is always built by the loader; its own
        # dataclass default is irrelevant.
        default, factory = MISSING, None

    return FieldDescriptor(
        name=f.name,
        key=decl.key or f.name,
        type=inner,
        kind=kind,
        default=default,
        default_factory=factory,
        env=decl.env,
        dsn=decl.dsn,
        validate=decl.validate,
        ref=decl.ref,
        ref_from=decl.ref_from,
        optional=optional,
        nested=nested,
    )


def _nested_kind(tp: Any) -> tuple[str, Schema | None]:
    if is_struct(tp):
        return STRUCT, describe(tp)
    element = struct_element(tp)
    if element is not None:
        shape, elem_type = element
        kind = STRUCT_LIST if shape == "list" else STRUCT_MAP
        return kind, describe(elem_type)
    return SCALAR, None


def _check_keys(schema: Schema) -> None:
    seen: dict[str, str] = {}
    for fd in schema.fields:
        if fd.key in seen:
            raise SchemaError(
                "duplicate source key",
                target=schema.name,
                key=fd.key,
                fields=f"{seen[fd.key]}, {fd.name}",
            )
        seen[fd.key] = fd.name


def _check_dsn_references(schema: Schema) -> None:
    for fd in schema.dsn_fields:
        assert fd.dsn is not None
        for ref in references(fd.dsn):
            where = f"{schema.name}.{fd.name}"
            target = _lookup(schema, ref)
            if target is None:
                raise SchemaError(
                    "DSN template references an unknown field",
                    field=where,
                    reference=ref,
                )
            # Same-level DSN fields expand in declaration order
            if (
                target.dsn is not None
                and schema.field(ref) is target
                and not _before(schema, target, fd)
            ):
                raise SchemaError(
                    "DSN template references a DSN field declared after it",
                    field=where,
                    reference=ref,
                )


def _check_refs(schema: Schema) -> None:
    for fd in schema.ref_fields:
        where = f"{schema.name}.{fd.name}"
        if fd.ref_from is not None:
            source = schema.field(fd.ref_from)
            if source is None or source is fd or source.kind != SCALAR:
                raise SchemaError(
                    "ref_from names an unknown field",
                    field=where,
                    reference=fd.ref_from,
                )
            if source.type is not str or source.dsn is not None:
                raise SchemaError(
                    "ref_from field must be a plain str field",
                    field=where,
                    reference=fd.ref_from,
                )
        if fd.ref is None:
            continue
        for ref in references(fd.ref):
            target = _lookup(schema, ref)
            if target is None:
                raise SchemaError(
                    "ref template references an unknown field",
                    field=where,
                    reference=ref,
                )
            # Refs resolve before any DSN expands, in declaration order per level
            same_level = schema.field(ref) is target
            if target.dsn is not None or (
                same_level and target.is_ref and not _before(schema, target, fd)
            ):
                raise SchemaError(
                    "ref template references a field resolved after it",
                    field=where,
                    reference=ref,
                )


def _before(schema: Schema, first: FieldDescriptor, second: FieldDescriptor) -> bool:
    return schema.fields.index(first) < schema.fields.index(second)


def _lookup(schema: Schema, path: str) -> FieldDescriptor | None:
    """Return the scalar field a dotted reference names, or None."""
    parts = path.split(".")
    cursor: Schema | None = schema
    for part in parts[:-1]:
        fd = cursor.field(part) if cursor is not None else None
        if fd is None or fd.kind != STRUCT:
            return None
        cursor = fd.nested
    leaf = cursor.field(parts[-1]) if cursor is not None else None
    return leaf if leaf is not None and leaf.kind == SCALAR else None
