"""
Built-in ref: resolvers.

    file   ${ref:file:///run/secrets/db_password}
           ${ref:file:///etc/app/secrets.yaml#database.password}
    env    ${ref:env:///DB_PASSWORD}
    http   ${ref:https://vault.internal/v1/token#data.token}

A fragment selects a dotted key from a YAML or JSON document.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import httpx
import yaml  # type: ignore[import-untyped]

from stratacfg.constants import MAX_REF_SIZE_BYTES


class FragmentNotFoundError(LookupError):
    """The fragment names a key that is absent from the referenced document."""

    pass


def select_fragment(data: bytes, fragment: str | None) -> bytes:
    """
    Pick the value at a dotted key from a YAML/JSON document.

    Scalars are returned as text, mappings and sequences as JSON.

    Raises:
        FragmentNotFoundError: If any segment of the key is missing
        yaml.YAMLError: If the document cannot be parsed
    """
    if not fragment:
        return data

    node: Any = yaml.safe_load(data)
    for part in fragment.split("."):
        if isinstance(node, Mapping) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            raise FragmentNotFoundError(f"key '{fragment}' not found in document")

    if isinstance(node, (dict, list)):
        return json.dumps(node, sort_keys=True).encode()
    if isinstance(node, bool):
        return b"true" if node else b"false"
    return b"" if node is None else str(node).encode()


class FileResolver:
    """
    Read a secret from the local filesystem.

    Relative paths are resolved against base_dir (default: working directory).
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None

    def __call__(self, path: str, fragment: str | None) -> bytes:
        if not path:
            raise ValueError("file reference has an empty path")
        target = Path(path).expanduser()
        if not target.is_absolute() and self._base_dir is not None:
            target = self._base_dir / target

        size = target.stat().st_size
        if size > MAX_REF_SIZE_BYTES:
            raise ValueError(
                f"referenced file '{target}' is {size} bytes, "
                f"exceeding maximum size of {MAX_REF_SIZE_BYTES} bytes"
            )
        return select_fragment(target.read_bytes(), fragment)


class EnvResolver:
    """
    Read a secret from an environment variable.

    Unlike inline ${env:KEY}, an unset variable is an error here.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def __call__(self, path: str, fragment: str | None) -> bytes:
        name = path.strip("/")
        if not name:
            raise ValueError("env reference has an empty variable name")
        environ = self._environ if self._environ is not None else os.environ
        if name not in environ:
            raise KeyError(f"environment variable '{name}' is not set")
        return select_fragment(environ[name].encode(), fragment)


class HTTPResolver:
    """
    Fetch a secret with an HTTP GET request.

    Non-2xx responses raise httpx.HTTPStatusError. Bodies larger than
    max_size are rejected without being read in full.
    """

    def __init__(
        self,
        scheme: str = "https",
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        max_size: int = MAX_REF_SIZE_BYTES,
    ) -> None:
        self._scheme = scheme
        self._client = client
        self._timeout = timeout
        self._max_size = max_size

    def __call__(self, path: str, fragment: str | None) -> bytes:
        url = f"{self._scheme}://{path.lstrip('/')}"
        if self._client is not None:
            body = self._fetch(self._client, url)
        else:
            with httpx.Client(timeout=self._timeout) as client:
                body = self._fetch(client, url)
        return select_fragment(body, fragment)

    def _fetch(self, client: httpx.Client, url: str) -> bytes:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            chunks: list[bytes] = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > self._max_size:
                    raise ValueError(
                        f"reference content exceeds maximum size of "
                        f"{self._max_size} bytes"
                    )
                chunks.append(chunk)
        return b"".join(chunks)
