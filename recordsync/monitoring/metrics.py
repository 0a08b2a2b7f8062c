"""
Prometheus Metrics for Record Sync

Metrics for uploads, staging, reconciliation and annotation. Every metric is
registered on the collector's CollectorRegistry, so separate collectors (one
per test, say) never clash. The registry can be exposed over HTTP for
Prometheus scraping.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, start_http_server

from recordsync import __version__

logger = logging.getLogger(__name__)

NAMESPACE = "recordsync"


class ReconciliationMetrics:
    """Prometheus metrics for sync runs."""

    def __init__(self, registry: CollectorRegistry):
        """
        Initialize reconciliation metrics.

        Args:
            registry: Registry to register the metrics on
        """
        self.sync_runs_total = Counter(
            f"{NAMESPACE}_sync_runs_total",
            "Total number of sync runs",
            ["domain", "mode", "status"],
            registry=registry
        )

        self.rows_deleted_total = Counter(
            f"{NAMESPACE}_rows_deleted_total",
            "Master rows deleted because they left the extract",
            ["domain"],
            registry=registry
        )

        self.rows_inserted_total = Counter(
            f"{NAMESPACE}_rows_inserted_total",
            "Master rows inserted from staging",
            ["domain"],
            registry=registry
        )

        self.sync_failures_total = Counter(
            f"{NAMESPACE}_sync_failures_total",
            "Sync failures by the phase that failed",
            ["domain", "phase"],
            registry=registry
        )

        self.sync_duration_seconds = Histogram(
            f"{NAMESPACE}_sync_duration_seconds",
            "Duration of sync runs in seconds",
            ["domain"],
            buckets=[0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 300],
            registry=registry
        )

        self.last_sync_timestamp = Gauge(
            f"{NAMESPACE}_last_sync_timestamp_seconds",
            "Unix time of the last successful sync",
            ["domain"],
            registry=registry
        )

        logger.debug("ReconciliationMetrics initialized")

    def record_sync(
        self,
        domain: str,
        deleted: int,
        inserted: int,
        duration_seconds: float,
        dry_run: bool = False
    ) -> None:
        """
        Record a completed sync.

        Args:
            domain: Domain name
            deleted: Rows deleted (or that would be, for a dry run)
            inserted: Rows inserted (or that would be, for a dry run)
            duration_seconds: Duration in seconds
            dry_run: Whether master was left untouched
        """
        mode = "dry_run" if dry_run else "apply"
        self.sync_runs_total.labels(domain=domain, mode=mode, status="success").inc()

        if dry_run:
            return

        self.rows_deleted_total.labels(domain=domain).inc(deleted)
        self.rows_inserted_total.labels(domain=domain).inc(inserted)
        self.sync_duration_seconds.labels(domain=domain).observe(duration_seconds)
        self.last_sync_timestamp.labels(domain=domain).set_to_current_time()

        logger.debug(
            f"Recorded sync metrics for {domain}: deleted={deleted}, "
            f"inserted={inserted}, duration={duration_seconds:.3f}s"
        )

    def record_sync_failure(self, domain: str, phase: str) -> None:
        """Record a sync that failed in the given phase."""
        self.sync_runs_total.labels(domain=domain, mode="apply", status="failure").inc()
        self.sync_failures_total.labels(domain=domain, phase=phase).inc()


class IngestMetrics:
    """Prometheus metrics for uploads, staging, annotations and exports."""

    def __init__(self, registry: CollectorRegistry):
        """
        Initialize ingest metrics.

        Args:
            registry: Registry to register the metrics on
        """
        self.uploads_total = Counter(
            f"{NAMESPACE}_uploads_total",
            "Uploaded extracts by outcome",
            ["domain", "status"],
            registry=registry
        )

        self.rows_read_total = Counter(
            f"{NAMESPACE}_rows_read_total",
            "Raw extract rows read",
            ["domain"],
            registry=registry
        )

        self.rows_dropped_total = Counter(
            f"{NAMESPACE}_rows_dropped_total",
            "Extract rows dropped during normalization",
            ["domain", "reason"],
            registry=registry
        )

        self.staged_rows = Gauge(
            f"{NAMESPACE}_staged_rows",
            "Rows in the current staging snapshot",
            ["domain"],
            registry=registry
        )

        self.annotations_total = Counter(
            f"{NAMESPACE}_annotations_total",
            "Annotation updates by outcome",
            ["domain", "status"],
            registry=registry
        )

        self.exports_total = Counter(
            f"{NAMESPACE}_exports_total",
            "Master exports produced",
            ["domain"],
            registry=registry
        )

        logger.debug("IngestMetrics initialized")

    def record_upload(
        self,
        domain: str,
        status: str,
        rows_read: int = 0,
        dropped: Optional[Dict[str, int]] = None
    ) -> None:
        """
        Record an upload.

        Args:
            domain: Domain name ("unknown" when it could not be resolved)
            status: success or failure
            rows_read: Raw rows read from the extract
            dropped: Dropped row counts by reason
        """
        self.uploads_total.labels(domain=domain, status=status).inc()
        self.rows_read_total.labels(domain=domain).inc(rows_read)

        for reason, count in (dropped or {}).items():
            self.rows_dropped_total.labels(domain=domain, reason=reason).inc(count)

    def set_staged_rows(self, domain: str, count: int) -> None:
        self.staged_rows.labels(domain=domain).set(count)

    def record_annotation(self, domain: str, status: str) -> None:
        self.annotations_total.labels(domain=domain, status=status).inc()

    def record_export(self, domain: str) -> None:
        self.exports_total.labels(domain=domain).inc()


class MetricsCollector:
    """
    Main metrics collector for record sync.

    Combines all metric categories on one registry.
    """

    def __init__(self, port: int = 9090, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collector.

        Args:
            port: Port for the Prometheus metrics server
            registry: Prometheus registry (a fresh one if not provided)
        """
        self.port = port
        self.registry = registry or CollectorRegistry()
        self.reconciliation = ReconciliationMetrics(self.registry)
        self.ingest = IngestMetrics(self.registry)

        self.build_info = Info(f"{NAMESPACE}_build", "Record sync build information", registry=self.registry)
        self.build_info.info({"version": __version__})

        logger.info(f"MetricsCollector initialized (port {port})")

    def start_server(self) -> None:
        """Start the Prometheus metrics HTTP server."""
        try:
            start_http_server(self.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.port}")
        except OSError as e:
            if "Address already in use" in str(e):
                logger.warning(f"Metrics server already running on port {self.port}")
            else:
                raise

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Current value of one sample, or None if it was never recorded."""
        return self.registry.get_sample_value(name, labels or {})


_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(port: int = 9090) -> MetricsCollector:
    """
    Get or create the process-wide metrics collector.

    Args:
        port: Port for metrics server

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector

    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(port=port)

    return _metrics_collector
