"""
Unit tests for comparer module.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from src.forensics.comparer import ValueComparer


class TestValueComparer:
    """Test suite for ValueComparer class."""

    @pytest.fixture
    def comparer(self):
        return ValueComparer(ignore_fields=["updated_at"])

    def test_nested_values_compare_by_content(self, comparer):
        """Test key order does not affect equality."""
        assert comparer.values_equal({"a": [1, {"b": 2, "c": 3}]}, {"a": [1, {"c": 3, "b": 2}]})

    def test_list_order_matters(self, comparer):
        assert not comparer.values_equal([1, 2], [2, 1])

    def test_none_equals_none(self, comparer):
        assert comparer.values_equal(None, None)

    def test_type_sensitive(self, comparer):
        """Test 1 and "1" are different values."""
        assert not comparer.values_equal(1, "1")

    def test_special_types_normalized(self, comparer):
        uid = "12345678-1234-5678-1234-567812345678"

        assert comparer.values_equal(UUID(uid), uid)
        assert comparer.values_equal(Decimal("1.50"), Decimal("1.5"))
        assert comparer.values_equal(
            datetime(2026, 1, 1, tzinfo=timezone.utc),
            "2026-01-01T00:00:00+00:00"
        )
        assert comparer.values_equal((1, 2), [1, 2])

    def test_changed_fields_sorted_and_filtered(self, comparer):
        before = {"b": 1, "a": 1, "updated_at": "x", "same": True}
        after = {"b": 2, "a": 2, "updated_at": "y", "same": True, "new": None}

        assert comparer.changed_fields(before, after) == ["a", "b"]

    def test_to_comparable_is_canonical(self, comparer):
        assert comparer.to_comparable({"b": 1, "a": None}) == '{"a":null,"b":1}'
