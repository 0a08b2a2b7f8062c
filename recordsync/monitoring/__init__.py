"""
Monitoring Module for Record Sync

Observability components for the record sync pipeline:
- Prometheus metrics for uploads, syncs and annotations
- Alert rule definitions

Usage:
    from recordsync.monitoring import MetricsCollector, AlertRuleGenerator

    metrics = MetricsCollector()
    metrics.reconciliation.record_sync("invoices", deleted=1, inserted=1, duration_seconds=0.4)

    rules = AlertRuleGenerator().generate_alert_rules()
"""

from recordsync.monitoring.alerts import AlertRuleGenerator
from recordsync.monitoring.metrics import (
    IngestMetrics,
    MetricsCollector,
    ReconciliationMetrics,
    get_metrics_collector,
)

__all__ = [
    "AlertRuleGenerator",
    "IngestMetrics",
    "MetricsCollector",
    "ReconciliationMetrics",
    "get_metrics_collector",
]
