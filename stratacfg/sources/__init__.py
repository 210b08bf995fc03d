"""
Source loaders.

Each loader is a plain function returning an overlay: a dict keyed by field
name holding only the fields its layer explicitly sets.
"""

from .convert import convert, convert_field
from .defaults import defaults_overlay
from .dotenv import dotenv_environ, search_dotenv
from .env import env_overlay
from .file import (
    Parser,
    apply_overrides,
    file_overlay,
    parse_tree,
    read_source,
    subtree,
    yaml_parser,
)

__all__ = [
    "convert",
    "convert_field",
    "defaults_overlay",
    "dotenv_environ",
    "search_dotenv",
    "env_overlay",
    "Parser",
    "apply_overrides",
    "file_overlay",
    "parse_tree",
    "read_source",
    "subtree",
    "yaml_parser",
]
