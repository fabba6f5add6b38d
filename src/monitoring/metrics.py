"""
Prometheus Metrics for Audit Forensics

Custom metrics for tracking diff extraction, undo resolution, replay bundle
builds and audit export requests. Metrics can be exposed over HTTP for
Prometheus scraping or pushed to a Pushgateway from batch CLI runs.
"""

import logging
import time
from functools import wraps
from typing import Dict, List, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    push_to_gateway,
    start_http_server,
)

logger = logging.getLogger(__name__)


class ForensicsMetrics:
    """Prometheus metrics for the forensics engine."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize forensics metrics.

        Args:
            registry: Prometheus registry (a fresh one if not provided)
        """
        self.registry = registry or CollectorRegistry()

        # Diff extraction
        self.diff_entries_total = Counter(
            'audit_diff_entries_total',
            'Total diff entries extracted',
            ['action'],
            registry=self.registry
        )

        # Undo resolution
        self.undo_resolutions_total = Counter(
            'audit_undo_resolutions_total',
            'Undo resolution attempts by outcome',
            ['outcome'],
            registry=self.registry
        )

        # Bundle builds
        self.bundles_built_total = Counter(
            'audit_replay_bundles_built_total',
            'Total replay bundles built',
            registry=self.registry
        )

        self.bundle_events = Histogram(
            'audit_replay_bundle_events',
            'Number of events per replay bundle',
            buckets=[0, 10, 50, 100, 250, 500, 1000, 2000, 4000],
            registry=self.registry
        )

        self.bundle_correlations = Histogram(
            'audit_replay_bundle_correlations',
            'Number of correlation groups per replay bundle',
            buckets=[0, 10, 50, 100, 250, 500, 1000, 2000, 4000],
            registry=self.registry
        )

        self.bundle_build_duration_seconds = Histogram(
            'audit_replay_bundle_build_duration_seconds',
            'Time spent building replay bundles',
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry
        )

        # Export requests
        self.export_requests_total = Counter(
            'audit_export_requests_total',
            'Audit export requests by HTTP status',
            ['status'],
            registry=self.registry
        )

        self.source_rows_loaded_total = Counter(
            'audit_source_rows_loaded_total',
            'Audit rows loaded from upstream by source',
            ['source'],
            registry=self.registry
        )

        self.engine_info = Info(
            'audit_forensics',
            'Audit forensics engine information',
            registry=self.registry
        )
        self.engine_info.info({
            'version': '1.0.0',
            'replay_schema': 'admin_forensics_replay_v1',
        })

        logger.info("ForensicsMetrics initialized")

    def record_diff(self, action: str, entry_count: int) -> None:
        """Record the number of diff entries extracted for an action."""
        self.diff_entries_total.labels(action=action).inc(entry_count)

    def record_undo_resolution(self, resolved: bool) -> None:
        """Record whether an undo record resolved to a diff."""
        self.undo_resolutions_total.labels(
            outcome='resolved' if resolved else 'unresolved'
        ).inc()

    def record_bundle(
        self,
        event_count: int,
        correlation_count: int,
        duration_seconds: float
    ) -> None:
        """
        Record a replay bundle build.

        Args:
            event_count: Events in the bundle
            correlation_count: Correlation groups in the bundle
            duration_seconds: Build duration in seconds
        """
        self.bundles_built_total.inc()
        self.bundle_events.observe(event_count)
        self.bundle_correlations.observe(correlation_count)
        self.bundle_build_duration_seconds.observe(duration_seconds)

        logger.debug(
            f"Recorded bundle metrics: events={event_count}, "
            f"correlations={correlation_count}, duration={duration_seconds:.4f}s"
        )

    def record_source_rows(self, counts: Dict[str, int]) -> None:
        """Record rows loaded per audit source."""
        for source, count in counts.items():
            self.source_rows_loaded_total.labels(source=source).inc(count)

    def record_export_request(self, status: int) -> None:
        """Record an export request outcome by HTTP status."""
        self.export_requests_total.labels(status=str(status)).inc()

    def time_bundle_build(self, func):
        """
        Decorator timing a bundle-building function.

        The wrapped function must return a replay bundle dictionary.
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            bundle = func(*args, **kwargs)
            duration = time.perf_counter() - start_time
            totals = bundle.get("totals", {})
            self.record_bundle(
                event_count=totals.get("event_count", 0),
                correlation_count=totals.get("correlation_count", 0),
                duration_seconds=duration
            )
            return bundle
        return wrapper

    def sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a sample value from this instance's registry."""
        return self.registry.get_sample_value(name, labels or {})

    def start_server(self, port: int = 9090) -> None:
        """Start Prometheus metrics HTTP server."""
        try:
            start_http_server(port, registry=self.registry)
            logger.info(f"Metrics server started on port {port}")
        except OSError as e:
            if "Address already in use" in str(e):
                logger.warning(f"Metrics server already running on port {port}")
            else:
                raise

    def push(
        self,
        gateway_url: str,
        job_name: str,
        grouping_key: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Push metrics to Prometheus Pushgateway.

        Args:
            gateway_url: Pushgateway URL
            job_name: Job name for metrics
            grouping_key: Optional grouping key labels
        """
        try:
            push_to_gateway(
                gateway_url,
                job=job_name,
                registry=self.registry,
                grouping_key=grouping_key or {}
            )
            logger.info(f"Pushed metrics to gateway: {gateway_url}")
        except Exception as e:
            logger.error(f"Failed to push metrics to gateway: {e}")
            raise


# Singleton instance
_metrics: Optional[ForensicsMetrics] = None


def get_metrics() -> ForensicsMetrics:
    """
    Get or create the singleton forensics metrics.

    Returns:
        ForensicsMetrics instance
    """
    global _metrics

    if _metrics is None:
        _metrics = ForensicsMetrics()

    return _metrics


def metric_names(metrics: ForensicsMetrics) -> List[str]:
    """Names of all metric families registered by a ForensicsMetrics instance."""
    return sorted(family.name for family in metrics.registry.collect())
