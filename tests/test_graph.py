"""
Tests for dependency ordering.
"""

import pytest

from berth.core.graph import CycleError, destroy_order, resolve_order


class TestResolveOrder:
    """Tests for resolve_order and destroy_order."""

    def test_dependencies_come_first(self):
        order = resolve_order(["container", "image"], {"container": ["image"]})
        assert order == ["image", "container"]

    def test_independent_nodes_keep_input_order(self):
        assert resolve_order(["b", "a", "c"], {}) == ["b", "a", "c"]

    def test_unknown_dependencies_ignored(self):
        assert resolve_order(["a"], {"a": ["missing"]}) == ["a"]

    def test_cycle_detected(self):
        with pytest.raises(CycleError) as exc_info:
            resolve_order(["a", "b"], {"a": ["b"], "b": ["a"]})
        assert exc_info.value.path == ["a", "b", "a"]
        assert "a -> b -> a" in str(exc_info.value)

    def test_destroy_order_is_reversed(self):
        assert destroy_order(["image", "container"], {"container": ["image"]}) == ["container", "image"]
