"""
Unit tests for undo module.
"""

import pytest

from src.forensics.models import DiffEntry, build_timeline_index
from src.forensics.undo import (
    UndoResolver,
    resolve_chain_parity,
    resolve_inverted_diff,
    resolve_undo_parity,
    resolve_undo_root_source_id,
    resolve_undo_source_id,
)


@pytest.fixture
def source_change(user_record):
    """User change taking x from 1 to 2."""
    return user_record(record_id="evt-1", before_data={"x": 1}, after_data={"x": 2})


class TestResolveUndoSourceId:
    """Test source id resolution."""

    def test_structured_field_preferred(self, admin_record):
        """Test undo_source_event_id wins over other pointers."""
        record = admin_record(metadata={
            "undo_source_event_id": "a",
            "source_event_id": "b",
            "label": "Audit undo c",
        })

        assert resolve_undo_source_id(record) == "a"

    def test_source_event_id_fallback(self, admin_record):
        record = admin_record(metadata={"source_event_id": "b", "label": "Audit undo c"})

        assert resolve_undo_source_id(record) == "b"

    def test_label_fallback(self, admin_record):
        """Test legacy label parsing."""
        record = admin_record(metadata={"label": "Audit undo evt_42-x"})

        assert resolve_undo_source_id(record) == "evt_42-x"

    @pytest.mark.parametrize("label", [
        "Audit undo",
        "Audit undo evt 42",
        "audit undo evt-1",
        "Undo evt-1",
    ])
    def test_unmatched_label_returns_none(self, admin_record, label):
        record = admin_record(metadata={"label": label})

        assert resolve_undo_source_id(record) is None

    def test_missing_metadata_returns_none(self, admin_record):
        assert resolve_undo_source_id(admin_record(metadata=None)) is None


class TestResolveInvertedDiff:
    """Test undo diff inversion."""

    def test_single_undo_inverts_source(self, source_change, admin_record):
        """Test undo of a user change swaps before and after."""
        undo = admin_record(record_id="undo-1", metadata={"label": "Audit undo evt-1"})
        index = build_timeline_index([undo], [source_change])

        assert resolve_inverted_diff(undo, index) == [
            DiffEntry(key="x", before_value=2, after_value=1)
        ]

    def test_undo_of_undo_restores_original_direction(self, source_change, admin_record):
        """Test two-hop label chain re-inverts the diff."""
        first = admin_record(record_id="undo-1", metadata={"label": "Audit undo evt-1"})
        second = admin_record(record_id="undo-2", metadata={"label": "Audit undo undo-1"})
        index = build_timeline_index([first, second], [source_change])

        assert resolve_inverted_diff(second, index) == [
            DiffEntry(key="x", before_value=1, after_value=2)
        ]

    def test_three_hop_chain(self, source_change, admin_record):
        """Test each admin layer flips the direction once."""
        first = admin_record(record_id="undo-1", metadata={"undo_source_event_id": "evt-1"})
        second = admin_record(record_id="undo-2", metadata={"undo_source_event_id": "undo-1"})
        third = admin_record(record_id="undo-3", metadata={"undo_source_event_id": "undo-2"})
        index = build_timeline_index([first, second, third], [source_change])

        assert resolve_inverted_diff(third, index) == [
            DiffEntry(key="x", before_value=2, after_value=1)
        ]

    def test_missing_source_returns_none(self, admin_record):
        undo = admin_record(metadata={"label": "Audit undo evt-404"})

        assert resolve_inverted_diff(undo, build_timeline_index([undo], [])) is None

    def test_non_undo_admin_source_returns_none(self, admin_record):
        """Test admin sources other than override commits are not walked."""
        other = admin_record(record_id="adm-1", action="admin.user.update",
                             before_data={"x": 1}, after_data={"x": 2})
        undo = admin_record(record_id="undo-1", metadata={"source_event_id": "adm-1"})
        index = build_timeline_index([other, undo], [])

        assert resolve_inverted_diff(undo, index) is None

    def test_empty_source_diff_returns_none(self, user_record, admin_record):
        source = user_record(record_id="evt-1", before_data={"x": 1}, after_data={"x": 1})
        undo = admin_record(metadata={"source_event_id": "evt-1"})
        index = build_timeline_index([undo], [source])

        assert resolve_inverted_diff(undo, index) is None

    def test_cycle_returns_none(self, admin_record):
        """Test undo records pointing at each other terminate."""
        first = admin_record(record_id="undo-1", metadata={"source_event_id": "undo-2"})
        second = admin_record(record_id="undo-2", metadata={"source_event_id": "undo-1"})
        index = build_timeline_index([first, second], [])

        assert resolve_inverted_diff(second, index) is None

    def test_chain_beyond_max_depth_returns_none(self, source_change, admin_record):
        """Test the hop budget bounds the walk."""
        first = admin_record(record_id="undo-1", metadata={"source_event_id": "evt-1"})
        second = admin_record(record_id="undo-2", metadata={"source_event_id": "undo-1"})
        third = admin_record(record_id="undo-3", metadata={"source_event_id": "undo-2"})
        index = build_timeline_index([first, second, third], [source_change])

        resolver = UndoResolver(max_depth=1)

        assert resolver.resolve_inverted_diff(second, index) is None
        assert resolver.resolve_inverted_diff(first, index) == [
            DiffEntry(key="x", before_value=2, after_value=1)
        ]

    def test_root_and_parity_short_circuit(self, source_change, admin_record):
        """Test explicit root pointer with parity resolves without walking."""
        undo = admin_record(record_id="undo-5", metadata={
            "source_event_id": "undo-missing",
            "undo_root_source_event_id": "evt-1",
            "undo_parity": 0,
        })
        index = build_timeline_index([undo], [source_change])

        assert resolve_inverted_diff(undo, index) == [
            DiffEntry(key="x", before_value=1, after_value=2)
        ]

    def test_index_is_not_mutated(self, source_change, admin_record):
        undo = admin_record(record_id="undo-1", metadata={"label": "Audit undo evt-1"})
        index = build_timeline_index([undo], [source_change])
        snapshot = dict(index)

        resolve_inverted_diff(undo, index)

        assert index == snapshot


class TestUndoParity:
    """Test undo parity resolution."""

    @pytest.mark.parametrize("raw,expected", [
        (0, 0),
        (1, 1),
        (1.0, 1),
        ("1", 1),
        (" 0 ", 0),
        (2, None),
        (True, None),
        ("x", None),
        (None, None),
    ])
    def test_explicit_parity(self, admin_record, raw, expected):
        record = admin_record(metadata={"undo_parity": raw})

        assert resolve_undo_parity(record) == expected

    def test_parity_derived_from_chain(self, source_change, admin_record):
        """Test parity alternates along the chain."""
        first = admin_record(record_id="undo-1", metadata={"source_event_id": "evt-1"})
        second = admin_record(record_id="undo-2", metadata={"source_event_id": "undo-1"})
        index = build_timeline_index([first, second], [source_change])

        assert resolve_chain_parity(first, index) == 1
        assert resolve_chain_parity(second, index) == 0

    def test_root_source_id(self, admin_record):
        record = admin_record(metadata={"root_source_event_id": "evt-1"})

        assert resolve_undo_root_source_id(record) == "evt-1"
