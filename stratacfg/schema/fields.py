"""
Field declarations and the immutable schema built from them.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import MISSING, dataclass
from typing import Any

from stratacfg.constants import SETTING_METADATA_KEY

SCALAR = "scalar"
STRUCT = "struct"
STRUCT_LIST = "struct_list"
STRUCT_MAP = "struct_map"

# Optional capability: a configuration class exposing this method has it
# called after merging, before DSN expansion, innermost first.
HOOK_NAME = "set_defaults"


@dataclass(frozen=True)
class Setting:
    """Declaration attached to a dataclass field by setting()."""

    key: str | None = None
    # MISSING as a plain default would read as "no default" to dataclasses
    default: Any = dataclasses.field(default_factory=lambda: MISSING)
    env: str | None = None
    dsn: str | None = None
    validate: str | None = None
    ref: str | None = None
    ref_from: str | None = None


def setting(
    *,
    key: str | None = None,
    default: Any = MISSING,
    env: str | None = None,
    dsn: str | None = None,
    validate: str | None = None,
    ref: str | None = None,
    ref_from: str | None = None,
) -> Any:
    """
    Declare how a configuration field is sourced.

    Args:
        key: Key in the structured file (defaults to the field name)
        default: Default literal, e.g. "30s" for a timedelta field
        env: Environment variable name (the loader prefix is prepended)
        dsn: Template composed from other fields, e.g.
             "postgres://${.user}:${env:DB_PASS}@${.host}/app"
        validate: Directive handed to the validator, e.g. "required,ge=1"
        ref: URI whose content becomes the value when no layer set one,
             e.g. "file:///run/secrets/${.account}-password"
        ref_from: Name of a sibling str field holding such a URI; it is
             tried before ref

    Example:
        @dataclass
        class Database:
            host: str = setting(default="localhost", env="DB_HOST")
            port: int = setting(default="5432", validate="ge=1,le=65535")
            url: str = setting(dsn="postgres://${.host}:${.port}/app")
    """
    decl = Setting(
        key=key,
        default=default,
        env=env,
        dsn=dsn,
        validate=validate,
        ref=ref,
        ref_from=ref_from,
    )
    return dataclasses.field(default=None, metadata={SETTING_METADATA_KEY: decl})


@dataclass(frozen=True)
class FieldDescriptor:
    """Everything the pipeline needs to know about one field."""

    name: str
    key: str
    type: Any
    kind: str = SCALAR
    default: Any = dataclasses.field(default_factory=lambda: MISSING)
    default_factory: Callable[[], Any] | None = None
    env: str | None = None
    dsn: str | None = None
    validate: str | None = None
    ref: str | None = None
    ref_from: str | None = None
    optional: bool = False
    nested: Schema | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING or self.default_factory is not None

    def default_value(self) -> Any:
        """Return the declared default, calling the factory when there is one."""
        if self.default_factory is not None:
            return self.default_factory()
        return self.default

    @property
    def is_struct(self) -> bool:
        return self.kind != SCALAR

    @property
    def is_ref(self) -> bool:
        return self.ref is not None or self.ref_from is not None


@dataclass(frozen=True)
class Schema:
    """
    Immutable description of one configuration class.

    Built once per class by describe() and shared by every load.
    """

    type: type
    fields: tuple[FieldDescriptor, ...]
    has_hook: bool = False

    @property
    def name(self) -> str:
        return self.type.__name__

    def field(self, name: str) -> FieldDescriptor | None:
        for fd in self.fields:
            if fd.name == name:
                return fd
        return None

    @property
    def dsn_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(fd for fd in self.fields if fd.dsn is not None)

    @property
    def ref_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(fd for fd in self.fields if fd.is_ref)

    @property
    def struct_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(fd for fd in self.fields if fd.is_struct)
