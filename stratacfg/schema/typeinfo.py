"""
Helpers for inspecting field annotations.
"""

import dataclasses
import datetime
import enum
import types
import typing
from collections.abc import Mapping, Sequence
from typing import Any, Union

_NONE_TYPE = type(None)

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, Sequence)
_MAPPING_ORIGINS = (dict, Mapping)


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """
    Strip None from a union annotation.

    Returns:
        (inner type, whether None was part of the annotation)
    """
    origin = typing.get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not _NONE_TYPE]
        optional = len(args) != len(typing.get_args(tp))
        if len(args) == 1:
            return args[0], optional
        return Union[tuple(args)], optional  # type: ignore[return-value]
    return tp, tp is _NONE_TYPE


def is_struct(tp: Any) -> bool:
    """Check whether an annotation names a dataclass type."""
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def struct_element(tp: Any) -> tuple[str, Any] | None:
    """
    Detect collections of nested structures.

    Returns:
        ("list", element type) or ("map", value type), or None
    """
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin in _SEQUENCE_ORIGINS and args and is_struct(args[0]):
        return "list", args[0]
    if origin in _MAPPING_ORIGINS and len(args) == 2 and is_struct(args[1]):
        return "map", args[1]
    return None


def zero_value(tp: Any, optional: bool = False) -> Any:
    """
    Return the empty value a field holds before any layer sets it.

    Optional fields start as None, containers start empty, numbers at zero.
    """
    if optional:
        return None

    origin = typing.get_origin(tp) or tp
    if origin is typing.Literal or tp is Any:
        return None
    if not isinstance(origin, type):
        return None
    if issubclass(origin, enum.Enum):
        return None
    if origin is bool:
        return False
    if issubclass(origin, str):
        return origin()
    if issubclass(origin, (int, float)):
        return origin(0)
    if origin is datetime.timedelta:
        return datetime.timedelta(0)
    if origin in (list, Sequence):
        return []
    if origin in (tuple, set, frozenset, dict):
        return origin()
    if origin is Mapping:
        return {}
    return None


def is_unset(value: Any) -> bool:
    """
    Check whether a layer value counts as "not set".

    None, empty strings and empty containers never overwrite earlier layers.
    """
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False
