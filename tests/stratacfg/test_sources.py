"""
Tests for the source loaders.

Tests key functionality including:
- Defaults overlay
- Structured file reading, parsing, overrides and overlay walk
- Dotenv environment view (order, override, search, no mutation)
- Environment overlay with prefix and unset handling
"""

import datetime
import os
from dataclasses import dataclass
from unittest.mock import patch

import pytest

from stratacfg.constants import MAX_CONFIG_SIZE_BYTES
from stratacfg.exceptions import FileFormatError, ParseError, SourceError
from stratacfg.schema import describe, setting
from stratacfg.sources import (
    apply_overrides,
    defaults_overlay,
    dotenv_environ,
    env_overlay,
    file_overlay,
    parse_tree,
    read_source,
    search_dotenv,
)


@dataclass
class Server:
    host: str = setting(default="localhost", env="HOST")
    port: int = setting(default="8080", env="PORT")
    timeout: datetime.timedelta = setting(default="30s", key="request_timeout")
    debug: bool = setting(env="DEBUG")
    workers: int = 0
    url: str = setting(dsn="http://${.host}:${.port}")


# =============================================================================
# Test Defaults Overlay
# =============================================================================


@pytest.mark.unit
class TestDefaultsOverlay:
    """Test the defaults layer."""

    def test_converts_declared_defaults(self):
        """Test default literals are converted to field types."""
        overlay = defaults_overlay(describe(Server))
        assert overlay == {
            "host": "localhost",
            "port": 8080,
            "timeout": datetime.timedelta(seconds=30),
            "workers": 0,
        }

    def test_bad_default(self):
        """Test an unconvertible default raises ParseError."""

        @dataclass
        class Bad:
            port: int = setting(default="eighty")

        with pytest.raises(ParseError) as exc_info:
            defaults_overlay(describe(Bad), "svc.")
        assert exc_info.value.field == "svc.port"
        assert exc_info.value.source == "default"


# =============================================================================
# Test File Source
# =============================================================================


@pytest.mark.unit
class TestReadSource:
    """Test reading documents from disk."""

    def test_reads_bytes(self, temp_dir):
        """Test an existing file is read."""
        path = temp_dir / "app.yaml"
        path.write_text("port: 1\n")
        assert read_source(path) == b"port: 1\n"

    def test_missing_required(self, temp_dir):
        """Test a missing required file raises SourceError."""
        with pytest.raises(SourceError, match="not found"):
            read_source(temp_dir / "nope.yaml")

    def test_missing_optional(self, temp_dir):
        """Test a missing optional file yields None."""
        assert read_source(temp_dir / "nope.yaml", required=False) is None

    def test_oversized(self, temp_dir):
        """Test files over the size limit are rejected."""
        path = temp_dir / "big.yaml"
        path.write_text("x: 1\n")
        with patch(
            "stratacfg.sources.file.os.path.getsize",
            return_value=MAX_CONFIG_SIZE_BYTES + 1,
        ):
            with pytest.raises(SourceError, match="exceeding maximum size"):
                read_source(path)


@pytest.mark.unit
class TestParseTree:
    """Test parsing documents."""

    def test_yaml_mapping(self):
        """Test a YAML mapping is parsed."""
        assert parse_tree(b"a: 1\nb:\n  c: x\n") == {"a": 1, "b": {"c": "x"}}

    def test_json_is_yaml(self):
        """Test JSON documents parse too."""
        assert parse_tree(b'{"a": [1, 2]}') == {"a": [1, 2]}

    def test_numeric_keys_stringified(self):
        """Test numeric mapping keys become strings."""
        assert parse_tree(b"8080: web\n") == {"8080": "web"}

    @pytest.mark.parametrize("data", [None, b"", b"   \n", b"# only a comment\n"])
    def test_empty_document(self, data):
        """Test empty documents are empty mappings."""
        assert parse_tree(data) == {}

    def test_non_mapping_root(self):
        """Test a sequence root is rejected."""
        with pytest.raises(FileFormatError, match="must be a mapping"):
            parse_tree(b"- a\n- b\n", "app.yaml")

    def test_syntax_error(self):
        """Test parser failures raise FileFormatError."""
        with pytest.raises(FileFormatError) as exc_info:
            parse_tree(b"a: [1, 2\n", "app.yaml")
        assert exc_info.value.context["source"] == "app.yaml"

    def test_custom_parser(self):
        """Test the parser collaborator is used."""
        assert parse_tree(b"ignored", parser=lambda data: {"k": "v"}) == {"k": "v"}


@pytest.mark.unit
class TestApplyOverrides:
    """Test dotted-key overrides."""

    def test_overrides_nested(self):
        """Test dotted keys replace nested values."""
        tree = {"db": {"port": 1, "host": "a"}}
        result = apply_overrides(tree, {"db.port": 2, "name": "x"})
        assert result == {"db": {"port": 2, "host": "a"}, "name": "x"}
        # Input tree is untouched
        assert tree["db"]["port"] == 1

    def test_creates_missing_branches(self):
        """Test intermediate mappings are created."""
        assert apply_overrides({}, {"a.b.c": 1}) == {"a": {"b": {"c": 1}}}


@pytest.mark.unit
class TestFileOverlay:
    """Test the file layer."""

    def test_walks_by_source_key(self):
        """Test values are read by key and converted."""
        tree = {"host": "db", "port": "5432", "request_timeout": "1m", "debug": True}
        overlay = file_overlay(describe(Server), tree)
        assert overlay == {
            "host": "db",
            "port": 5432,
            "timeout": datetime.timedelta(minutes=1),
            "debug": True,
        }

    def test_field_name_is_not_key(self):
        """Test the field name is ignored when a key is declared."""
        overlay = file_overlay(describe(Server), {"timeout": "1m"})
        assert "timeout" not in overlay

    def test_unset_values_skipped(self):
        """Test null and empty values contribute nothing."""
        overlay = file_overlay(describe(Server), {"host": "", "port": None})
        assert overlay == {}

    def test_explicit_zero_is_set(self):
        """Test zero and false are real values."""
        overlay = file_overlay(describe(Server), {"workers": 0, "debug": False})
        assert overlay == {"workers": 0, "debug": False}

    def test_unknown_keys_logged(self, mock_logger):
        """Test unknown keys are ignored at debug level."""
        overlay = file_overlay(describe(Server), {"colour": "blue"}, lg=mock_logger)
        assert overlay == {}
        mock_logger.debug.assert_called_once()
        assert mock_logger.debug.call_args.kwargs["extra"]["key"] == "colour"

    def test_bad_value(self):
        """Test unconvertible values name the file layer."""
        with pytest.raises(ParseError) as exc_info:
            file_overlay(describe(Server), {"port": "http"})
        assert exc_info.value.source == "file"


# =============================================================================
# Test Dotenv Source
# =============================================================================


@pytest.mark.unit
class TestDotenvEnviron:
    """Test the dotenv environment view."""

    def test_reads_files_in_order(self, temp_dir):
        """Test later files win over earlier ones."""
        first = temp_dir / ".env"
        second = temp_dir / ".env.local"
        first.write_text("A=1\nB=1\n")
        second.write_text("B=2\n")

        view = dotenv_environ([first, second], environ={})
        assert view == {"A": "1", "B": "2"}

    def test_live_environment_wins_by_default(self, temp_dir):
        """Test keys already in the base environment are kept."""
        path = temp_dir / ".env"
        path.write_text("A=file\nB=file\n")

        view = dotenv_environ([path], environ={"A": "live"})
        assert view == {"A": "live", "B": "file"}

    def test_override_mode(self, temp_dir):
        """Test override lets dotenv values win."""
        path = temp_dir / ".env"
        path.write_text("A=file\n")

        view = dotenv_environ([path], environ={"A": "live"}, override=True)
        assert view["A"] == "file"

    def test_missing_files_skipped(self, temp_dir, mock_logger):
        """Test missing files are skipped silently."""
        view = dotenv_environ(
            [temp_dir / "nope.env"], environ={"X": "1"}, lg=mock_logger
        )
        assert view == {"X": "1"}
        mock_logger.debug.assert_called()

    def test_process_environment_untouched(self, temp_dir):
        """Test os.environ is never modified."""
        path = temp_dir / ".env"
        path.write_text("STRATACFG_TEST_ONLY_IN_FILE=1\n")

        view = dotenv_environ([path])
        assert view["STRATACFG_TEST_ONLY_IN_FILE"] == "1"
        assert "STRATACFG_TEST_ONLY_IN_FILE" not in os.environ

    def test_base_mapping_untouched(self, temp_dir):
        """Test the given base mapping is copied."""
        path = temp_dir / ".env"
        path.write_text("A=1\n")
        base = {"B": "2"}

        dotenv_environ([path], environ=base)
        assert base == {"B": "2"}

    def test_search_picks_first_existing(self, temp_dir):
        """Test search mode reads the first matching directory."""
        (temp_dir / "a").mkdir()
        (temp_dir / "b").mkdir()
        (temp_dir / "c").mkdir()
        (temp_dir / "b" / ".env").write_text("FROM=b\n")
        (temp_dir / "c" / ".env").write_text("FROM=c\n")

        dirs = [temp_dir / "a", temp_dir / "b", temp_dir / "c"]
        assert search_dotenv(".env", dirs) == temp_dir / "b" / ".env"
        view = dotenv_environ([], environ={}, search=(".env", dirs))
        assert view == {"FROM": "b"}

    def test_search_nothing_found(self, temp_dir):
        """Test search mode with no match adds nothing."""
        assert dotenv_environ([], environ={}, search=(".env", [temp_dir])) == {}


# =============================================================================
# Test Environment Overlay
# =============================================================================


@pytest.mark.unit
class TestEnvOverlay:
    """Test the environment layer."""

    def test_reads_declared_names(self):
        """Test declared variables are converted."""
        environ = {"HOST": "h", "PORT": "9", "DEBUG": "yes"}
        overlay = env_overlay(describe(Server), environ)
        assert overlay == {"host": "h", "port": 9, "debug": True}

    def test_prefix(self):
        """Test the prefix is prepended to every name."""
        environ = {"APP_HOST": "prefixed", "HOST": "bare"}
        overlay = env_overlay(describe(Server), environ, prefix="APP_")
        assert overlay == {"host": "prefixed"}

    def test_unset_and_empty_ignored(self):
        """Test unset and empty variables contribute nothing."""
        overlay = env_overlay(describe(Server), {"HOST": ""})
        assert overlay == {}

    def test_bad_value_names_variable(self):
        """Test errors name the variable."""
        with pytest.raises(ParseError) as exc_info:
            env_overlay(describe(Server), {"APP_PORT": "x"}, prefix="APP_")
        assert exc_info.value.source == "env:APP_PORT"
        assert exc_info.value.field == "port"
