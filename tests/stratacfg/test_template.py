"""
Tests for document templating.

Tests key functionality including:
- Path resolution against dicts, sequences and objects
- Fallback values and missing-key policies
- Escapes and custom delimiters
"""

from dataclasses import dataclass

import pytest

from stratacfg.exceptions import TemplateError
from stratacfg.template import MustacheRenderer


@dataclass
class Region:
    name: str
    zones: list[str]


# =============================================================================
# Test Substitution
# =============================================================================


@pytest.mark.unit
class TestMustacheRenderer:
    """Test the default renderer."""

    def test_dict_path(self):
        """Test dotted paths into dicts."""
        out = MustacheRenderer().render(b"port: {{ db.port }}", {"db": {"port": 5432}})
        assert out == b"port: 5432"

    def test_object_and_index(self):
        """Test attributes and sequence indexes."""
        data = {"region": Region("eu", ["a", "b"])}
        out = MustacheRenderer().render(b"{{region.name}}-{{ region.zones.1 }}", data)
        assert out == b"eu-b"

    def test_bool_rendering(self):
        """Test booleans render in YAML spelling."""
        assert MustacheRenderer().render(b"{{ on }}", {"on": True}) == b"true"

    def test_fallback(self):
        """Test fallbacks apply to missing paths."""
        out = MustacheRenderer().render(b'host: {{ db.host | "localhost" }}', {})
        assert out == b"host: localhost"

    def test_missing_is_error(self):
        """Test missing paths fail by default."""
        with pytest.raises(TemplateError) as exc_info:
            MustacheRenderer().render(b"{{ nope }}", {})
        assert exc_info.value.context["path"] == "nope"

    def test_missing_empty_policy(self):
        """Test the empty policy substitutes nothing."""
        out = MustacheRenderer(missing="empty").render(b"a{{ nope }}b", {})
        assert out == b"ab"

    def test_escape(self):
        """Test escaped delimiters are emitted literally."""
        out = MustacheRenderer().render(b"\\{{ kept }} {{ x }}", {"x": 1})
        assert out == b"{{ kept }} 1"

    def test_custom_delimiters(self):
        """Test custom delimiters leave the default ones alone."""
        renderer = MustacheRenderer(delimiters=("<%", "%>"))
        out = renderer.render(b"<% a %> {{ a }}", {"a": "x"})
        assert out == b"x {{ a }}"

    def test_private_segments_rejected(self):
        """Test underscore-prefixed segments are refused."""
        with pytest.raises(TemplateError):
            MustacheRenderer().render(b"{{ obj.__class__ }}", {"obj": object()})

    def test_invalid_utf8(self):
        """Test undecodable templates raise TemplateError."""
        with pytest.raises(TemplateError):
            MustacheRenderer().render(b"\xff\xfe", {})

    def test_invalid_options(self):
        """Test bad constructor options are rejected."""
        with pytest.raises(ValueError):
            MustacheRenderer(missing="ignore")
        with pytest.raises(ValueError):
            MustacheRenderer(delimiters=("", "}}"))
