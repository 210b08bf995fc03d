"""
Conversion of raw layer values to a field's declared type.

Raw values arrive as strings (defaults, environment, dotenv) or as YAML
scalars, sequences and mappings (structured file). Each is converted to the
annotation of the field it lands in.
"""

import datetime
import enum
import inspect
import types
import typing
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Union

from stratacfg.exceptions import ParseError
from stratacfg.units import parse_duration

_TRUE = frozenset({"true", "yes", "on", "1", "t", "y"})
_FALSE = frozenset({"false", "no", "off", "0", "f", "n"})

# Raised by conversions for values that do not fit; huge numbers overflow
_CONVERSION_ERRORS = (ValueError, TypeError, KeyError, OverflowError)


def convert(value: Any, tp: Any) -> Any:
    """
    Convert a raw value to type tp.

    Raises:
        ValueError / TypeError: If the value does not fit the type
    """
    if tp is Any or tp is object:
        return value

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is Union or origin is types.UnionType:
        return _convert_union(value, args)
    if origin is typing.Literal:
        return _convert_literal(value, args)
    if origin in (list, tuple, set, frozenset, Sequence):
        return _convert_sequence(value, origin, args)
    if origin in (dict, Mapping):
        return _convert_mapping(value, args)

    if not isinstance(tp, type):
        raise TypeError(f"unsupported field type {tp!r}")

    # Custom scanner capability: a classmethod scan(raw) on the field type
    scanner = inspect.getattr_static(tp, "scan", None)
    if isinstance(scanner, (classmethod, staticmethod)):
        return tp.scan(value)  # type: ignore[attr-defined]
    if isinstance(value, tp) and not (tp is int and isinstance(value, bool)):
        return value
    if tp is bool:
        return _convert_bool(value)
    if tp is int:
        return _convert_int(value)
    if tp is float:
        return _convert_float(value)
    if tp is str:
        return _convert_str(value)
    if tp is datetime.timedelta:
        return _convert_duration(value)
    if issubclass(tp, enum.Enum):
        return _convert_enum(value, tp)
    if tp is bytes:
        return str(value).encode()
    if issubclass(tp, Path):
        return tp(str(value)).expanduser()
    return tp(value)


def convert_field(value: Any, tp: Any, field: str, source: str) -> Any:
    """
    Convert a value for a named field, wrapping failures in ParseError.

    Args:
        value: Raw value
        tp: Declared field type
        field: Dotted field path, for error context
        source: Layer the value came from ("default", "file", "env:NAME")
    """
    try:
        return convert(value, tp)
    except ParseError:
        raise
    except _CONVERSION_ERRORS as e:
        raise ParseError(
            f"cannot convert value to {_type_name(tp)}: {e}",
            field=field,
            value=value,
            source=source,
        ) from e


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or str(tp)


def _convert_union(value: Any, args: tuple[Any, ...]) -> Any:
    members = [a for a in args if a is not type(None)]
    if value is None and len(members) != len(args):
        return None
    errors = []
    for member in members:
        try:
            return convert(value, member)
        except _CONVERSION_ERRORS as e:
            errors.append(str(e))
    raise ValueError("; ".join(errors) or f"no union member accepts {value!r}")


def _convert_literal(value: Any, args: tuple[Any, ...]) -> Any:
    for allowed in args:
        if value == allowed or (isinstance(value, str) and str(allowed) == value):
            return allowed
    raise ValueError(f"{value!r} is not one of {list(args)!r}")


def _split(value: str, sep: str = ",") -> list[str]:
    return [part.strip() for part in value.split(sep) if part.strip()]


def _convert_sequence(value: Any, origin: Any, args: tuple[Any, ...]) -> Any:
    if isinstance(value, str):
        items: list[Any] = _split(value)
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise TypeError(f"expected a sequence, got {type(value).__name__}")

    if origin is tuple and args and args[-1] is not Ellipsis:
        if len(items) != len(args):
            raise ValueError(f"expected {len(args)} items, got {len(items)}")
        return tuple(
            convert(item, tp) for item, tp in zip(items, args, strict=True)
        )

    elem = args[0] if args else Any
    converted = [convert(item, elem) for item in items]
    if origin in (list, Sequence):
        return converted
    return origin(converted)


def _convert_mapping(value: Any, args: tuple[Any, ...]) -> dict[Any, Any]:
    key_tp, val_tp = args if len(args) == 2 else (Any, Any)
    if isinstance(value, str):
        pairs = {}
        for item in _split(value):
            key, sep, raw = item.partition("=")
            if not sep:
                raise ValueError(f"expected key=value, got '{item}'")
            pairs[key.strip()] = raw.strip()
        value = pairs
    if not isinstance(value, Mapping):
        raise TypeError(f"expected a mapping, got {type(value).__name__}")
    return {convert(k, key_tp): convert(v, val_tp) for k, v in value.items()}


def _convert_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ValueError(f"invalid boolean {value!r}")


def _convert_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not a whole number")
        return int(value)
    if isinstance(value, str):
        text = value.strip().replace("_", "")
        try:
            return int(text)
        except ValueError:
            return int(text, 0)
    if isinstance(value, int):
        return value
    raise TypeError(f"expected an integer, got {type(value).__name__}")


def _convert_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _convert_str(value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise TypeError(f"expected a scalar, got {type(value).__name__}")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _convert_duration(value: Any) -> datetime.timedelta:
    if isinstance(value, bool):
        raise TypeError("boolean is not a duration")
    if isinstance(value, (int, float)):
        return datetime.timedelta(seconds=value)
    if isinstance(value, str):
        return parse_duration(value)
    raise TypeError(f"expected a duration, got {type(value).__name__}")


def _convert_enum(value: Any, tp: type[enum.Enum]) -> enum.Enum:
    try:
        return tp(value)
    except ValueError:
        pass
    if isinstance(value, str):
        for member in tp:
            if member.name.lower() == value.strip().lower():
                return member
            if str(member.value) == value:
                return member
    raise ValueError(f"{value!r} is not a valid {tp.__name__}")
