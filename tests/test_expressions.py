"""
Tests for ${...} expressions.
"""

import pytest

from berth.core.expressions import (
    UNKNOWN,
    ExpressionError,
    Reference,
    contains_unknown,
    evaluate,
    find_references,
    parse_reference,
)


def make_resolver(values):
    def resolve(ref):
        return values.get(str(ref), UNKNOWN)

    return resolve


class TestParseReference:
    """Tests for parse_reference."""

    def test_variable(self):
        ref = parse_reference("var.container_name")
        assert ref == Reference(kind="var", name="container_name")
        assert ref.address == "var.container_name"

    def test_resource_attribute(self):
        ref = parse_reference("docker_image.nginx.image_id")
        assert ref.kind == "resource"
        assert ref.address == "docker_image.nginx"
        assert ref.attribute == "image_id"
        assert str(ref) == "docker_image.nginx.image_id"

    @pytest.mark.parametrize("text", ["var", "docker_image.nginx", "upper(var.x)", "a.b.c.d"])
    def test_unsupported(self, text):
        with pytest.raises(ExpressionError):
            parse_reference(text)


class TestEvaluate:
    """Tests for evaluate."""

    def test_whole_string_keeps_type(self):
        """Test that a string that is exactly one expression takes the raw value."""
        assert evaluate("${var.port}", make_resolver({"var.port": 8000})) == 8000

    def test_splice_into_text(self):
        resolve = make_resolver({"var.name": "web", "var.on": True})
        assert evaluate("${var.name}-${var.on}", resolve) == "web-true"

    def test_nested_structures(self):
        resolve = make_resolver({"var.port": 8000})
        value = {"ports": [{"internal": 80, "external": "${var.port}"}]}
        assert evaluate(value, resolve) == {"ports": [{"internal": 80, "external": 8000}]}

    def test_unknown_propagates_through_splice(self):
        assert evaluate("id=${docker_image.nginx.id}", make_resolver({})) is UNKNOWN

    def test_plain_values_untouched(self):
        assert evaluate(42, make_resolver({})) == 42
        assert evaluate("no expressions", make_resolver({})) == "no expressions"


class TestHelpers:
    """Tests for find_references and contains_unknown."""

    def test_find_references_recursive(self):
        refs = find_references({"a": ["${var.x}", {"b": "${docker_image.i.id}"}], "c": 1})
        assert [str(r) for r in refs] == ["var.x", "docker_image.i.id"]

    def test_contains_unknown(self):
        assert contains_unknown([1, {"a": UNKNOWN}])
        assert not contains_unknown([1, {"a": None}])

    def test_unknown_is_falsy_singleton(self):
        assert not UNKNOWN
        assert repr(UNKNOWN) == "(known after apply)"
        assert type(UNKNOWN)() is UNKNOWN
