"""
Monitoring Module for Audit Forensics

This module provides observability components for the audit forensics
engine and its export boundary:
- Prometheus metrics for diffing, undo resolution and bundle builds
- Export request counters by HTTP status

Usage:
    from src.monitoring import ForensicsMetrics

    metrics = ForensicsMetrics()
    metrics.record_bundle(event_count=120, correlation_count=45, duration_seconds=0.02)
    metrics.record_export_request(200)
"""

from src.monitoring.metrics import ForensicsMetrics, get_metrics

__all__ = [
    "ForensicsMetrics",
    "get_metrics",
]

__version__ = "1.0.0"
