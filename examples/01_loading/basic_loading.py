#!/usr/bin/env python3
"""
Basic Loading Example

This example declares a configuration dataclass and loads it from defaults,
a YAML document and environment variables.

What This Example Demonstrates:
- Declaring fields with setting()
- Layer precedence: defaults < file < environment
- Durations and byte sizes
- Aggregated validation errors

Running the Example:
    python examples/01_loading/basic_loading.py
"""

import datetime
import logging
import pathlib
import sys
from dataclasses import dataclass, field

# examples/01_loading/file.py -> project root is 2 levels up
project_root = str(pathlib.Path(__file__).resolve().parents[2])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from stratacfg import ByteSize, ValidationError, load_bytes, setting

DOCUMENT = """
server:
  port: 9000
  max_body: 4MiB
log_level: info
"""


@dataclass
class Server:
    host: str = setting(default="0.0.0.0", env="SERVER_HOST")
    port: int = setting(default="8080", env="SERVER_PORT", validate="ge=1,le=65535")
    timeout: datetime.timedelta = setting(default="30s")
    max_body: ByteSize = setting(default="1MiB")


@dataclass
class AppConfig:
    log_level: str = setting(default="warning", env="LOG_LEVEL")
    server: Server = field(default_factory=Server)


def demo_precedence():
    """Show how each layer overrides the previous one."""
    print("=== Precedence ===")
    env = {"SERVER_HOST": "127.0.0.1", "LOG_LEVEL": ""}
    config = load_bytes(DOCUMENT, AppConfig, environ=env)

    print(f"host      {config.server.host}  (environment)")
    print(f"port      {config.server.port}  (file)")
    print(f"timeout   {config.server.timeout}  (default)")
    print(f"max_body  {config.server.max_body}  (file, parsed from 4MiB)")
    print(f"log_level {config.log_level}  (file, empty variable ignored)")


def demo_validation():
    """Show that every violation is reported at once."""
    print("\n=== Validation ===")
    try:
        load_bytes("server:\n  port: 0\n", AppConfig, environ={})
    except ValidationError as e:
        for violation in e.violations:
            print(f"  {violation}")


def main():
    logging.basicConfig(level=logging.INFO)
    demo_precedence()
    demo_validation()


if __name__ == "__main__":
    main()
