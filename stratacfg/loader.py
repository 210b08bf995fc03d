"""
One-shot configuration loading.

Loader.load() runs the whole pipeline for a configuration dataclass and
either returns a fully populated, validated instance or raises. Precedence,
lowest to highest: declared defaults, structured file (and overrides),
environment (process environment plus dotenv files). Fields declaring a
ref that no layer set are then fetched through the resolver registry. Hooks
run after merging, DSN templates are expanded after hooks, validation runs
last.
"""

import logging
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from .constants import DEFAULT_DEBOUNCE_SECS, DEFAULT_POLL_INTERVAL_SECS
from .dsn import (
    ResolverRegistry,
    expand,
    field_values,
    global_registry,
    resolve_ref,
)
from .exceptions import OptionsError, ParseError, ValidationError
from .schema import HOOK_NAME, STRUCT, STRUCT_LIST, STRUCT_MAP, Schema, describe
from .schema.typeinfo import is_unset, zero_value
from .sources import (
    Parser,
    apply_overrides,
    convert_field,
    defaults_overlay,
    dotenv_environ,
    env_overlay,
    file_overlay,
    parse_tree,
    read_source,
    search_dotenv,
    subtree,
)
from .template import MustacheRenderer, Renderer
from .validation import PydanticValidator, Validator

T = TypeVar("T")

PathLike = str | os.PathLike[str]

_default_validator = PydanticValidator()


@dataclass(frozen=True)
class LoaderOptions:
    """
    Immutable loader and watcher configuration, validated on construction.

    Example:
        options = LoaderOptions(
            file="etc/app.yaml",
            dotenv_files=(".env",),
            env_prefix="APP_",
        )
        config = Loader(options).load(AppConfig)
    """

    file: PathLike | None = None
    file_optional: bool = False
    source: bytes | str | None = None
    source_name: str = "<source>"
    dotenv_files: tuple[PathLike, ...] = ()
    dotenv_override: bool = False
    dotenv_search: tuple[str, tuple[PathLike, ...]] | None = None
    env_prefix: str = ""
    template_data: Any = None
    renderer: Renderer | None = None
    overrides: Mapping[str, Any] = field(default_factory=dict)
    resolvers: ResolverRegistry | None = None
    parser: Parser | None = None
    validator: Validator | None = None
    validate: bool = True
    environ: Mapping[str, str] | None = None
    debounce: float = DEFAULT_DEBOUNCE_SECS
    poll_interval: float | None = DEFAULT_POLL_INTERVAL_SECS

    def __post_init__(self) -> None:
        if self.file is not None and self.source is not None:
            raise OptionsError("file and source are mutually exclusive")
        if isinstance(self.source, str):
            object.__setattr__(self, "source", self.source.encode())
        if isinstance(self.dotenv_files, (str, os.PathLike)):
            raise OptionsError(
                "dotenv_files must be a sequence of paths",
                dotenv_files=self.dotenv_files,
            )
        object.__setattr__(self, "dotenv_files", tuple(self.dotenv_files))
        self._check_search()
        self._check_overrides()
        self._check_intervals()
        if not isinstance(self.env_prefix, str):
            raise OptionsError("env_prefix must be a string")
        if self.renderer is not None and not callable(
            getattr(self.renderer, "render", None)
        ):
            raise OptionsError("renderer must provide render(template, data)")
        if self.validator is not None and not callable(self.validator):
            raise OptionsError("validator must be callable")
        if self.parser is not None and not callable(self.parser):
            raise OptionsError("parser must be callable")

    def _check_search(self) -> None:
        if self.dotenv_search is None:
            return
        try:
            name, dirs = self.dotenv_search
        except (TypeError, ValueError) as e:
            raise OptionsError("dotenv_search must be (file name, directories)") from e
        if not name or not dirs or isinstance(dirs, (str, os.PathLike)):
            raise OptionsError(
                "dotenv_search must be (file name, directories)", name=name
            )
        object.__setattr__(self, "dotenv_search", (name, tuple(dirs)))

    def _check_overrides(self) -> None:
        for key in self.overrides:
            if not isinstance(key, str) or not key or "" in key.split("."):
                raise OptionsError("invalid override key", key=key)
        object.__setattr__(self, "overrides", dict(self.overrides))

    def _check_intervals(self) -> None:
        if self.debounce <= 0:
            raise OptionsError("debounce must be positive", debounce=self.debounce)
        if self.poll_interval is not None and self.poll_interval <= 0:
            raise OptionsError(
                "poll_interval must be positive", poll_interval=self.poll_interval
            )


class Loader:
    """
    Resolves configuration dataclasses from the configured sources.

    A Loader holds no state between loads; it can be reused and shared
    between threads.
    """

    def __init__(
        self, options: LoaderOptions | None = None, lg: logging.Logger | None = None
    ) -> None:
        self.options = options or LoaderOptions()
        self._lg = lg or logging.getLogger("stratacfg.loader")

    @property
    def source_name(self) -> str:
        if self.options.file is not None:
            return str(self.options.file)
        return self.options.source_name

    def source_paths(self) -> list[Path]:
        """Return the files this loader reads: the config file and dotenv files."""
        paths = []
        if self.options.file is not None:
            paths.append(Path(self.options.file))
        paths.extend(Path(p) for p in self.options.dotenv_files)
        if self.options.dotenv_search is not None:
            name, dirs = self.options.dotenv_search
            found = search_dotenv(name, dirs)
            # Watch the first candidate so a file created later is noticed
            paths.append(found if found else Path(dirs[0]) / name)
        return paths

    def tree(self) -> dict[str, Any]:
        """
        Return the document as a plain dict: rendered, parsed and overridden.

        Raises:
            SourceError / TemplateError / FileFormatError
        """
        data = self._read()
        if data is not None:
            data = self._render(data)
        tree = parse_tree(data, self.source_name, self.options.parser)
        if self.options.overrides:
            tree = apply_overrides(tree, self.options.overrides)
        return tree

    def environ(self) -> dict[str, str]:
        """Return the environment view: process environment plus dotenv files."""
        opts = self.options
        if not opts.dotenv_files and opts.dotenv_search is None:
            return dict(os.environ if opts.environ is None else opts.environ)
        return dotenv_environ(
            opts.dotenv_files,
            environ=opts.environ,
            override=opts.dotenv_override,
            search=opts.dotenv_search,
            lg=self._lg,
        )

    def load(self, cls: type[T]) -> T:
        """
        Resolve a configuration dataclass.

        Args:
            cls: Configuration dataclass type

        Returns:
            A populated, validated instance of cls

        Raises:
            SchemaError: Invalid field declarations
            SourceError / TemplateError: Document could not be read or rendered
            ParseError: A value does not fit its field type
            ResolutionError: A DSN placeholder or ref could not be resolved
            ValidationError: Every violation found by the validator
        """
        schema = describe(cls)
        tree = self.tree()
        environ = self.environ()

        registry = self.options.resolvers
        if registry is None:
            registry = global_registry()
        obj = self._build(schema, tree, environ, registry, "")
        self._run_hooks(obj, schema)
        self._expand(obj, schema, registry, environ, "")
        if self.options.validate:
            self._validate(obj, schema)

        self._lg.debug(
            "configuration loaded",
            extra={"target": schema.name, "source": self.source_name},
        )
        return obj  # type: ignore[no-any-return]

    def _read(self) -> bytes | None:
        if self.options.source is not None:
            return self.options.source  # type: ignore[return-value]
        if self.options.file is not None:
            required = not self.options.file_optional
            return read_source(self.options.file, required=required)
        return None

    def _render(self, data: bytes) -> bytes:
        opts = self.options
        if opts.renderer is None and opts.template_data is None:
            return data
        renderer = opts.renderer or MustacheRenderer()
        template_data = opts.template_data if opts.template_data is not None else {}
        return renderer.render(data, template_data)

    def _build(
        self,
        schema: Schema,
        tree: Any,
        environ: Mapping[str, str],
        registry: ResolverRegistry,
        path: str,
        env_layer: bool = True,
    ) -> Any:
        """Merge defaults < file < env for one level and recurse into nested ones."""
        values: dict[str, Any] = {
            fd.name: zero_value(fd.type, fd.optional)
            for fd in schema.fields
            if not fd.is_struct
        }
        values.update(defaults_overlay(schema, path))
        explicit = file_overlay(schema, tree, path, self._lg)
        if env_layer:
            explicit.update(
                env_overlay(schema, environ, self.options.env_prefix, path)
            )
        values.update(explicit)

        for fd in schema.struct_fields:
            assert fd.nested is not None
            sub = subtree(tree, fd.key)
            where = path + fd.name
            if fd.kind == STRUCT:
                if sub is None and fd.optional:
                    values[fd.name] = None
                    continue
                _expect(sub, Mapping, "mapping", where)
                values[fd.name] = self._build(
                    fd.nested, sub or {}, environ, registry, where + ".", env_layer
                )
            elif fd.kind == STRUCT_LIST:
                if sub is None:
                    values[fd.name] = None if fd.optional else []
                    continue
                _expect(sub, list, "sequence", where)
                items = []
                for i, item in enumerate(sub):
                    label = f"{where}[{i}]"
                    _expect(item, Mapping, "mapping", label)
                    items.append(
                        self._build(
                            fd.nested, item, environ, registry, label + ".", False
                        )
                    )
                values[fd.name] = items
            elif fd.kind == STRUCT_MAP:
                if sub is None:
                    values[fd.name] = None if fd.optional else {}
                    continue
                _expect(sub, Mapping, "mapping", where)
                entries = {}
                for key, item in sub.items():
                    label = f"{where}[{key}]"
                    _expect(item, Mapping, "mapping", label)
                    entries[str(key)] = self._build(
                        fd.nested, item, environ, registry, label + ".", False
                    )
                values[fd.name] = entries

        obj = schema.type(**values)
        if schema.ref_fields:
            self._resolve_refs(obj, schema, explicit, registry, environ, path)
        return obj

    def _resolve_refs(
        self,
        obj: Any,
        schema: Schema,
        explicit: Mapping[str, Any],
        registry: ResolverRegistry,
        environ: Mapping[str, str],
        path: str,
    ) -> None:
        """Fill ref fields not set by the file or env layer, in declaration order."""
        for fd in schema.ref_fields:
            if fd.name in explicit:
                continue
            where = path + fd.name
            uri = None
            content = None
            if fd.ref_from is not None:
                uri = getattr(obj, fd.ref_from, None)
                if uri:
                    content = resolve_ref(
                        _ref_uri(uri), registry, field=where, missing_ok=True
                    )
            if content is None and fd.ref is not None:
                fields = field_values(obj, schema)
                uri = expand(fd.ref, fields, registry, environ, field=where)
                content = resolve_ref(
                    _ref_uri(uri), registry, field=where, missing_ok=True
                )
            if content is None:
                # Nothing found: the default, if any, stays
                continue
            setattr(obj, fd.name, convert_field(content, fd.type, where, f"ref:{uri}"))
            self._lg.debug("resolved ref field", extra={"field": where})

    def _run_hooks(self, obj: Any, schema: Schema) -> None:
        """Call set_defaults() innermost first."""
        for fd in schema.struct_fields:
            assert fd.nested is not None
            for child in _children(obj, fd.name, fd.kind):
                self._run_hooks(child, fd.nested)
        if schema.has_hook:
            getattr(obj, HOOK_NAME)()

    def _expand(
        self,
        obj: Any,
        schema: Schema,
        registry: ResolverRegistry,
        environ: Mapping[str, str],
        path: str,
    ) -> None:
        """Expand DSN fields innermost first, in declaration order per level."""
        for fd in schema.struct_fields:
            assert fd.nested is not None
            for label, child in _labelled_children(obj, fd.name, fd.kind):
                self._expand(child, fd.nested, registry, environ, path + label + ".")

        for fd in schema.dsn_fields:
            assert fd.dsn is not None
            # A value from the file, the env layer or a hook is kept
            if not is_unset(getattr(obj, fd.name, None)):
                continue
            # Recomputed per field so earlier DSN results are visible to later ones
            fields = field_values(obj, schema)
            value = expand(fd.dsn, fields, registry, environ, field=path + fd.name)
            setattr(obj, fd.name, value)

    def _validate(self, obj: Any, schema: Schema) -> None:
        validator = self.options.validator or _default_validator
        violations = validator(obj)
        if violations:
            self._lg.debug(
                "configuration failed validation",
                extra={"target": schema.name, "violations": len(violations)},
            )
            raise ValidationError(violations, target=schema.name)


def _expect(value: Any, kind: type, label: str, where: str) -> None:
    if value is not None and not isinstance(value, kind):
        raise ParseError(
            f"expected a {label}, got {type(value).__name__}",
            field=where,
            value=value,
            source="file",
        )


def _labelled_children(obj: Any, name: str, kind: str) -> Iterator[tuple[str, Any]]:
    value = getattr(obj, name, None)
    if value is None:
        return
    if kind == STRUCT:
        yield name, value
    elif kind == STRUCT_LIST:
        for i, item in enumerate(value):
            yield f"{name}[{i}]", item
    elif kind == STRUCT_MAP:
        for key, item in value.items():
            yield f"{name}[{key}]", item


def _children(obj: Any, name: str, kind: str) -> Iterator[Any]:
    for _, child in _labelled_children(obj, name, kind):
        yield child


def _ref_uri(uri: str) -> str:
    """Treat scheme-less references ("/run/secrets/db") as file paths."""
    if "://" in uri:
        return uri
    if ":" not in uri or uri.startswith(("/", "./", "../", "~")):
        return "file://" + uri
    return uri


def load(cls: type[T], **options: Any) -> T:
    """
    Load a configuration dataclass in one call.

    Example:
        config = stratacfg.load(AppConfig, file="app.yaml", env_prefix="APP_")
    """
    return Loader(LoaderOptions(**options)).load(cls)


def load_file(path: PathLike, cls: type[T], **options: Any) -> T:
    """Load a configuration dataclass from a structured file."""
    return Loader(LoaderOptions(file=path, **options)).load(cls)


def load_bytes(data: bytes | str, cls: type[T], **options: Any) -> T:
    """Load a configuration dataclass from an in-memory document."""
    return Loader(LoaderOptions(source=data, **options)).load(cls)


def set_defaults(cls: type[T], validate: bool = False, **options: Any) -> T:
    """
    Build an instance from defaults and the environment, without a document.

    Hooks run and DSN fields are expanded as in a full load.
    """
    if options.get("file") is not None or options.get("source") is not None:
        raise OptionsError("set_defaults does not read a document")
    return Loader(LoaderOptions(validate=validate, **options)).load(cls)


def validate(obj: Any, validator: Validator | None = None) -> None:
    """
    Validate a populated configuration object.

    Raises:
        ValidationError: With every violation found
    """
    violations = (validator or _default_validator)(obj)
    if violations:
        raise ValidationError(violations, target=type(obj).__name__)

