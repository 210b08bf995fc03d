"""
Validation of populated configuration objects.

Each field's validate directive is a comma-separated list: "required" plus
pydantic Field constraints, e.g. "required,ge=1,le=65535". Everything after
"pattern=" is taken as the regular expression, so a pattern may contain
commas as long as it comes last.

PydanticValidator builds one pydantic model per configuration class (cached)
that type-checks every scalar field and applies the constraints, then
recurses into nested structures. All violations are collected.
"""

import enum
import threading
from dataclasses import dataclass
from typing import Annotated, Any, Optional, Protocol

import pydantic

from stratacfg.exceptions import SchemaError
from stratacfg.schema import (
    SCALAR,
    STRUCT,
    STRUCT_LIST,
    STRUCT_MAP,
    FieldDescriptor,
    Schema,
    describe,
)
from stratacfg.schema.typeinfo import is_unset

REQUIRED = "required"

_INT_CONSTRAINTS = frozenset({"min_length", "max_length", "max_digits"})
_NUMBER_CONSTRAINTS = frozenset({"gt", "ge", "lt", "le", "multiple_of"})
_STRING_CONSTRAINTS = frozenset({"pattern"})

# Generated model plus the per-field "required" flags
_Compiled = tuple[type[pydantic.BaseModel], dict[str, bool]]


@dataclass(frozen=True)
class Violation:
    """One failed check, addressed by dotted field path."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class Validator(Protocol):
    """Returns every violation found in a populated configuration object."""

    def __call__(self, obj: Any) -> list[Violation]: ...


@dataclass(frozen=True)
class Directive:
    required: bool
    constraints: dict[str, Any]


def parse_directive(text: str | None, where: str = "") -> Directive:
    """
    Parse a validate directive.

    Raises:
        SchemaError: On an unknown constraint or a malformed value
    """
    if not text:
        return Directive(required=False, constraints={})

    required = False
    constraints: dict[str, Any] = {}
    rest = text
    while rest:
        rest = rest.lstrip()
        if rest.startswith("pattern="):
            constraints["pattern"] = rest[len("pattern=") :]
            break
        token, _, rest = rest.partition(",")
        token = token.strip()
        if not token:
            continue
        if token == REQUIRED:
            required = True
            continue
        name, sep, raw = token.partition("=")
        name = name.strip()
        if not sep:
            raise SchemaError("unknown validation rule", field=where, rule=token)
        constraints[name] = _constraint_value(name, raw.strip(), where)
    return Directive(required=required, constraints=constraints)


def _constraint_value(name: str, raw: str, where: str) -> Any:
    try:
        if name in _INT_CONSTRAINTS:
            return int(raw)
        if name in _NUMBER_CONSTRAINTS:
            try:
                return int(raw)
            except ValueError:
                return float(raw)
    except ValueError as e:
        raise SchemaError(
            f"invalid value for constraint '{name}'", field=where, value=raw
        ) from e
    if name in _STRING_CONSTRAINTS:
        return raw
    raise SchemaError("unknown validation constraint", field=where, constraint=name)


def _model_type(tp: Any) -> Any:
    """Map custom scalar classes onto the builtin pydantic understands."""
    if isinstance(tp, type) and tp not in (bool, int, float, str):
        for base in (bool, int, float, str):
            if issubclass(tp, base) and not _is_enum(tp):
                return base
    return tp


def _is_enum(tp: type) -> bool:
    return issubclass(tp, enum.Enum)


class PydanticValidator:
    """
    Validator backed by pydantic models generated from configuration schemas.

    Example:
        violations = PydanticValidator()(config)
        for v in violations:
            print(v.path, v.message)
    """

    def __init__(self) -> None:
        self._models: dict[type, _Compiled] = {}
        self._lock = threading.Lock()

    def __call__(self, obj: Any) -> list[Violation]:
        violations: list[Violation] = []
        self._check(obj, describe(type(obj)), "", violations)
        return violations

    def _model(self, schema: Schema) -> _Compiled:
        with self._lock:
            cached = self._models.get(schema.type)
            if cached is None:
                cached = self._build_model(schema)
                self._models[schema.type] = cached
            return cached

    def _build_model(self, schema: Schema) -> _Compiled:
        definitions: dict[str, Any] = {}
        required: dict[str, bool] = {}
        for fd in schema.fields:
            directive = parse_directive(fd.validate, f"{schema.name}.{fd.name}")
            required[fd.name] = directive.required
            if fd.kind != SCALAR:
                if directive.constraints:
                    raise SchemaError(
                        "nested structure fields only accept 'required'",
                        field=f"{schema.name}.{fd.name}",
                    )
                continue
            annotation = _model_type(fd.type)
            if directive.constraints:
                constraint = pydantic.Field(**directive.constraints)
                annotation = Annotated[annotation, constraint]
            definitions[fd.name] = (Optional[annotation], None)

        try:
            model = pydantic.create_model(  # type: ignore[call-overload]
                f"{schema.name}Validation",
                __config__=pydantic.ConfigDict(arbitrary_types_allowed=True),
                **definitions,
            )
        except (TypeError, pydantic.PydanticUserError) as e:
            raise SchemaError(
                f"cannot build validation model: {e}", target=schema.name
            ) from e
        return model, required

    def _check(
        self, obj: Any, schema: Schema, prefix: str, out: list[Violation]
    ) -> None:
        model, required = self._model(schema)

        values: dict[str, Any] = {}
        for fd in schema.fields:
            value = getattr(obj, fd.name, None)
            if required[fd.name] and is_unset(value):
                out.append(Violation(prefix + fd.name, "field is required"))
            if fd.kind == SCALAR:
                values[fd.name] = value
            else:
                self._check_nested(fd, value, prefix, out)

        try:
            model.model_validate(values)
        except pydantic.ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(part) for part in err["loc"])
                out.append(Violation(prefix + loc, err["msg"]))

    def _check_nested(
        self, fd: FieldDescriptor, value: Any, prefix: str, out: list[Violation]
    ) -> None:
        if value is None or fd.nested is None:
            return
        if fd.kind == STRUCT:
            self._check(value, fd.nested, f"{prefix}{fd.name}.", out)
        elif fd.kind == STRUCT_LIST:
            for i, item in enumerate(value):
                self._check(item, fd.nested, f"{prefix}{fd.name}[{i}].", out)
        elif fd.kind == STRUCT_MAP:
            for key, item in value.items():
                self._check(item, fd.nested, f"{prefix}{fd.name}[{key}].", out)
