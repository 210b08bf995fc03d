from importlib.metadata import PackageNotFoundError, version

from .dsn import ResolverRegistry, default_registry, register_resolver
from .exceptions import (
    DsnSyntaxError,
    FileFormatError,
    OptionsError,
    ParseError,
    ResolutionError,
    SchemaError,
    SourceError,
    StrataError,
    StreamClosedError,
    TemplateError,
    UnknownSchemeError,
    UnresolvedReferenceError,
    ValidationError,
    WatcherError,
)
from .loader import (
    Loader,
    LoaderOptions,
    load,
    load_bytes,
    load_file,
    set_defaults,
    validate,
)
from .schema import FieldDescriptor, Schema, describe, setting
from .template import MustacheRenderer, Renderer
from .units import ByteSize, parse_duration, parse_size
from .validation import PydanticValidator, Validator, Violation
from .watcher import ReloadFailure, Snapshot, SnapshotStream, Watcher, WatcherState

# Version is read from package metadata (pyproject.toml)
try:
    __version__ = version("stratacfg")
except PackageNotFoundError:
    # Package not installed, use fallback (development mode)
    __version__ = "0.1.0-dev"

# Explicit public API
__all__ = [
    # Version
    "__version__",
    # Declaration
    "setting",
    "describe",
    "Schema",
    "FieldDescriptor",
    # Loading
    "Loader",
    "LoaderOptions",
    "load",
    "load_file",
    "load_bytes",
    "set_defaults",
    "validate",
    # Collaborators
    "Renderer",
    "MustacheRenderer",
    "Validator",
    "PydanticValidator",
    "Violation",
    "ResolverRegistry",
    "default_registry",
    "register_resolver",
    # Watching
    "Watcher",
    "WatcherState",
    "Snapshot",
    "ReloadFailure",
    "SnapshotStream",
    # Units
    "ByteSize",
    "parse_duration",
    "parse_size",
    # Exceptions
    "StrataError",
    "OptionsError",
    "SchemaError",
    "DsnSyntaxError",
    "SourceError",
    "FileFormatError",
    "TemplateError",
    "ParseError",
    "ResolutionError",
    "UnresolvedReferenceError",
    "UnknownSchemeError",
    "ValidationError",
    "WatcherError",
    "StreamClosedError",
]
