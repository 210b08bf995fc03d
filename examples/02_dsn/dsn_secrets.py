#!/usr/bin/env python3
"""
DSN Composition Example

This example composes a connection string from other fields, environment
variables and a secret file.

What This Example Demonstrates:
- ${.field} references within the same structure
- ${env:NAME} placeholders
- ${ref:file:///path#key} secrets and custom resolvers
- set_defaults() hooks running before DSN expansion
- ref / ref_from fields fetched from a secret directory

Running the Example:
    python examples/02_dsn/dsn_secrets.py
"""

import pathlib
import sys
import tempfile
from dataclasses import dataclass

# examples/02_dsn/file.py -> project root is 2 levels up
project_root = str(pathlib.Path(__file__).resolve().parents[2])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from stratacfg import ResolverRegistry, default_registry, load, setting


def build_database_class(secrets: pathlib.Path) -> type:
    @dataclass
    class Database:
        host: str = setting(default="localhost", env="DB_HOST")
        port: int = setting(default="5432")
        user: str = setting(env="DB_USER")
        name: str = setting(default="app")
        url: str = setting(
            dsn="postgres://${.user}:${ref:file://" + str(secrets) + "#db.password}"
            "@${.host}:${.port}/${.name}"
        )

        def set_defaults(self) -> None:
            if not self.user:
                self.user = "service"

    return Database


def build_account_class(secret_dir: pathlib.Path) -> type:
    @dataclass
    class Account:
        name: str = setting(default="svc")
        password_file: str = setting(env="PASSWORD_FILE")
        password: str = setting(
            default="changeme",
            ref="file://" + str(secret_dir) + "/${.name}-password",
            ref_from="password_file",
        )

    return Account


@dataclass
class Tokens:
    api: str = setting(dsn="Bearer ${ref:static:api}")


def demo_file_secret():
    """Compose a DSN with a secret read from a YAML file."""
    print("=== File secret ===")
    with tempfile.TemporaryDirectory() as tmp:
        secrets = pathlib.Path(tmp) / "secrets.yaml"
        secrets.write_text("db:\n  password: hunter2\n")
        config = load(build_database_class(secrets), environ={"DB_HOST": "db.local"})
        print(config.url)


def demo_custom_resolver():
    """Register a resolver for a custom scheme."""
    print("\n=== Custom resolver ===")
    registry: ResolverRegistry = default_registry()
    registry.register("static", lambda path, fragment: b"token-" + path.encode())
    print(load(Tokens, environ={}, resolvers=registry).api)


def demo_ref_fields():
    """Fetch whole field values from files; ref_from is tried before ref."""
    print("\n=== Ref fields ===")
    with tempfile.TemporaryDirectory() as tmp:
        secret_dir = pathlib.Path(tmp)
        (secret_dir / "svc-password").write_text("s3cret\n")
        (secret_dir / "override").write_text("from-override\n")
        account = build_account_class(secret_dir)
        print(load(account, environ={}).password)
        environ = {"PASSWORD_FILE": str(secret_dir / "override")}
        print(load(account, environ=environ).password)
        print(load(account, environ={"PASSWORD_FILE": "/nonexistent"}).password)


def main():
    demo_file_secret()
    demo_custom_resolver()
    demo_ref_fields()


if __name__ == "__main__":
    main()
