"""
Unit tests for forensics metrics.
"""

import pytest
from unittest.mock import patch

from src.forensics.replay import build_replay_bundle
from src.monitoring.metrics import ForensicsMetrics, get_metrics, metric_names


class TestForensicsMetrics:
    """Test suite for ForensicsMetrics class."""

    @pytest.fixture
    def metrics(self):
        return ForensicsMetrics()

    def test_registered_metrics(self, metrics):
        names = metric_names(metrics)

        assert "audit_diff_entries" in names
        assert "audit_export_requests" in names
        assert "audit_replay_bundle_build_duration_seconds" in names
        assert "audit_forensics" in names

    def test_record_diff(self, metrics):
        metrics.record_diff("trip.updated", 3)
        metrics.record_diff("trip.updated", 2)

        assert metrics.sample_value("audit_diff_entries_total", {"action": "trip.updated"}) == 5.0

    def test_record_undo_resolution(self, metrics):
        metrics.record_undo_resolution(True)
        metrics.record_undo_resolution(False)
        metrics.record_undo_resolution(False)

        assert metrics.sample_value("audit_undo_resolutions_total", {"outcome": "resolved"}) == 1.0
        assert metrics.sample_value("audit_undo_resolutions_total", {"outcome": "unresolved"}) == 2.0

    def test_time_bundle_build(self, metrics):
        """Test the decorator records bundle totals."""
        build = metrics.time_bundle_build(build_replay_bundle)
        events = [
            {"source": "user", "id": "e1", "created_at": "2026-01-01T00:00:00Z", "action": "a"},
            {"source": "user", "id": "e2", "created_at": "2026-01-02T00:00:00Z", "action": "a"},
        ]

        bundle = build(events, generated_at_iso="2026-01-03T00:00:00.000Z")

        assert bundle["totals"]["event_count"] == 2
        assert metrics.sample_value("audit_replay_bundles_built_total") == 1.0
        assert metrics.sample_value("audit_replay_bundle_events_sum") == 2.0
        assert metrics.sample_value("audit_replay_bundle_correlations_sum") == 2.0
        assert metrics.sample_value("audit_replay_bundle_build_duration_seconds_count") == 1.0

    def test_record_source_rows(self, metrics):
        metrics.record_source_rows({"admin": 4, "user": 7})

        assert metrics.sample_value("audit_source_rows_loaded_total", {"source": "admin"}) == 4.0
        assert metrics.sample_value("audit_source_rows_loaded_total", {"source": "user"}) == 7.0

    def test_instances_are_isolated(self):
        first = ForensicsMetrics()
        second = ForensicsMetrics()

        first.record_export_request(200)

        assert second.sample_value("audit_export_requests_total", {"status": "200"}) is None

    def test_push(self, metrics):
        with patch("src.monitoring.metrics.push_to_gateway") as mock_push:
            metrics.push("localhost:9091", "audit_forensics")

        mock_push.assert_called_once_with(
            "localhost:9091",
            job="audit_forensics",
            registry=metrics.registry,
            grouping_key={}
        )

    def test_get_metrics_singleton(self):
        assert get_metrics() is get_metrics()
