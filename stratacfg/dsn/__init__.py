"""
DSN composition package.

This module provides:
- scan() / references() for tokenizing ${...} templates
- expand() for resolving field, env and ref placeholders
- ResolverRegistry and the built-in file, env and http resolvers
"""

from .scanner import RefURI, parse_ref, references, scan
from .registry import (
    Resolver,
    ResolverRegistry,
    default_registry,
    global_registry,
    register_resolver,
)
from .expand import expand, field_values, format_value, resolve_ref
from .resolvers import (
    EnvResolver,
    FileResolver,
    FragmentNotFoundError,
    HTTPResolver,
    select_fragment,
)

__all__ = [
    "scan",
    "references",
    "parse_ref",
    "RefURI",
    "expand",
    "field_values",
    "format_value",
    "resolve_ref",
    "Resolver",
    "ResolverRegistry",
    "default_registry",
    "global_registry",
    "register_resolver",
    "FileResolver",
    "EnvResolver",
    "HTTPResolver",
    "FragmentNotFoundError",
    "select_fragment",
]
