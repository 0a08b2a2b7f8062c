"""
Unit tests for Prometheus metrics and alert rule generation.
"""

from unittest.mock import patch

import pytest
import yaml
from prometheus_client import CollectorRegistry


class TestMetricsCollector:
    """Test metric recording on a private registry."""

    def test_collectors_do_not_clash(self):
        from recordsync.monitoring.metrics import MetricsCollector

        first = MetricsCollector(registry=CollectorRegistry())
        second = MetricsCollector(registry=CollectorRegistry())

        assert first.registry is not second.registry

    def test_record_sync(self, metrics):
        metrics.reconciliation.record_sync("quotes", deleted=3, inserted=2, duration_seconds=0.25)

        assert metrics.get_sample_value("recordsync_rows_deleted_total", {"domain": "quotes"}) == 3.0
        assert metrics.get_sample_value("recordsync_rows_inserted_total", {"domain": "quotes"}) == 2.0
        assert metrics.get_sample_value("recordsync_sync_duration_seconds_count", {"domain": "quotes"}) == 1.0
        assert metrics.get_sample_value("recordsync_last_sync_timestamp_seconds", {"domain": "quotes"}) > 0

    def test_dry_run_counts_run_only(self, metrics):
        metrics.reconciliation.record_sync("quotes", 3, 2, 0.1, dry_run=True)

        assert metrics.get_sample_value(
            "recordsync_sync_runs_total", {"domain": "quotes", "mode": "dry_run", "status": "success"}
        ) == 1.0
        assert metrics.get_sample_value("recordsync_rows_deleted_total", {"domain": "quotes"}) is None

    def test_record_sync_failure(self, metrics):
        metrics.reconciliation.record_sync_failure("invoices", "delete")

        assert metrics.get_sample_value(
            "recordsync_sync_failures_total", {"domain": "invoices", "phase": "delete"}
        ) == 1.0
        assert metrics.get_sample_value(
            "recordsync_sync_runs_total", {"domain": "invoices", "mode": "apply", "status": "failure"}
        ) == 1.0

    def test_record_upload(self, metrics):
        metrics.ingest.record_upload("invoices", "success", rows_read=10, dropped={"aggregate_row": 1})

        assert metrics.get_sample_value("recordsync_rows_read_total", {"domain": "invoices"}) == 10.0
        assert metrics.get_sample_value(
            "recordsync_rows_dropped_total", {"domain": "invoices", "reason": "aggregate_row"}
        ) == 1.0

    def test_staged_rows_gauge(self, metrics):
        metrics.ingest.set_staged_rows("quotes", 42)

        assert metrics.get_sample_value("recordsync_staged_rows", {"domain": "quotes"}) == 42.0

    def test_build_info(self, metrics):
        from recordsync import __version__

        assert metrics.get_sample_value("recordsync_build_info", {"version": __version__}) == 1.0

    def test_start_server_uses_registry(self, metrics):
        with patch("recordsync.monitoring.metrics.start_http_server") as mock_server:
            metrics.start_server()

        mock_server.assert_called_once_with(9090, registry=metrics.registry)

    def test_start_server_already_running(self, metrics):
        with patch(
            "recordsync.monitoring.metrics.start_http_server",
            side_effect=OSError("[Errno 98] Address already in use")
        ):
            metrics.start_server()


class TestAlertRuleGenerator:
    """Test alert rule generation."""

    @pytest.fixture
    def generator(self):
        from recordsync.monitoring.alerts import AlertRuleGenerator
        return AlertRuleGenerator(max_retired_per_sync=100)

    def test_rule_groups(self, generator):
        rules = generator.generate_alert_rules()

        assert [g["name"] for g in rules["groups"]] == ["recordsync_sync", "recordsync_ingest"]

    def test_every_rule_is_complete(self, generator):
        for group in generator.generate_alert_rules()["groups"]:
            for rule in group["rules"]:
                assert set(rule) == {"alert", "expr", "for", "labels", "annotations"}
                assert rule["labels"]["severity"] in ("critical", "warning", "info")
                assert rule["expr"].count("recordsync_") >= 1

    def test_partial_sync_is_critical(self, generator):
        rules = {r["alert"]: r for g in generator.generate_alert_rules()["groups"] for r in g["rules"]}

        assert rules["PartialSync"]["labels"]["severity"] == "critical"
        assert 'phase="insert"' in rules["PartialSync"]["expr"]
        assert rules["LargeRetirement"]["expr"].endswith("> 100")

    def test_summary(self, generator):
        summary = generator.get_alert_summary()

        assert summary["total_groups"] == 2
        assert summary["total_alerts"] == 6
        assert summary["critical"] + summary["warning"] + summary["info"] == 6

    def test_export_to_yaml(self, generator, tmp_path):
        output = tmp_path / "rules.yml"

        generator.export_to_yaml(str(output))

        loaded = yaml.safe_load(output.read_text())
        assert loaded == generator.generate_alert_rules()
