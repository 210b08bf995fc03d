"""
Registry of ref: scheme resolvers.

A resolver is any callable taking (path, fragment) and returning the
referenced bytes. Failures are reported by raising; the DSN expander turns
them into ResolutionError for the field being expanded.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class Resolver(Protocol):
    """Capability turning a ref: reference into secret bytes."""

    def __call__(self, path: str, fragment: str | None) -> bytes: ...


class ResolverRegistry:
    """
    Thread-safe mapping of scheme name to resolver.

    Example:
        registry = default_registry()
        registry.register("vault", VaultResolver(client))
        # ${ref:vault:///secret/data/db#password} now resolves through it
    """

    def __init__(self, resolvers: Mapping[str, Resolver] | None = None) -> None:
        self._lock = threading.Lock()
        self._resolvers: dict[str, Resolver] = {}
        for scheme, resolver in (resolvers or {}).items():
            self.register(scheme, resolver)

    def register(self, scheme: str, resolver: Resolver) -> None:
        """
        Register (or replace) the resolver for a scheme.

        Raises:
            ValueError: If the scheme is empty
            TypeError: If resolver is not callable
        """
        if not scheme:
            raise ValueError("resolver scheme cannot be empty")
        if not callable(resolver):
            raise TypeError(f"resolver for '{scheme}' must be callable")
        with self._lock:
            self._resolvers[scheme.lower()] = resolver

    def unregister(self, scheme: str) -> None:
        with self._lock:
            self._resolvers.pop(scheme.lower(), None)

    def lookup(self, scheme: str) -> Resolver | None:
        with self._lock:
            return self._resolvers.get(scheme.lower())

    def schemes(self) -> list[str]:
        with self._lock:
            return sorted(self._resolvers)

    def copy(self) -> ResolverRegistry:
        with self._lock:
            return ResolverRegistry(dict(self._resolvers))

    def __contains__(self, scheme: object) -> bool:
        return isinstance(scheme, str) and self.lookup(scheme) is not None


def default_registry() -> ResolverRegistry:
    """Create a registry with the built-in file, env, http and https resolvers."""
    from .resolvers import EnvResolver, FileResolver, HTTPResolver

    return ResolverRegistry(
        {
            "file": FileResolver(),
            "env": EnvResolver(),
            "http": HTTPResolver("http"),
            "https": HTTPResolver("https"),
        }
    )


_global_registry: ResolverRegistry | None = None
_global_lock = threading.Lock()


def global_registry() -> ResolverRegistry:
    """Return the process-wide registry used when no registry is configured."""
    global _global_registry

    with _global_lock:
        if _global_registry is None:
            _global_registry = default_registry()
        return _global_registry


def register_resolver(scheme: str, resolver: Resolver) -> None:
    """Register a resolver in the process-wide registry."""
    global_registry().register(scheme, resolver)
