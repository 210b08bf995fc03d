"""
Configuration schema package.

This module provides:
- setting() for declaring how a dataclass field is sourced
- describe() for building the cached, immutable Schema of a dataclass
"""

from .fields import (
    HOOK_NAME,
    SCALAR,
    STRUCT,
    STRUCT_LIST,
    STRUCT_MAP,
    FieldDescriptor,
    Schema,
    Setting,
    setting,
)
from .introspect import clear_cache, describe

__all__ = [
    "FieldDescriptor",
    "Schema",
    "Setting",
    "setting",
    "describe",
    "clear_cache",
    "HOOK_NAME",
    "SCALAR",
    "STRUCT",
    "STRUCT_LIST",
    "STRUCT_MAP",
]
