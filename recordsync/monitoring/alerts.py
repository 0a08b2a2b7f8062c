"""
Alert Rule Generator for Prometheus AlertManager

Generates alert rule definitions for record sync monitoring: failed or
partial syncs, uploads that fail or drop many rows, unusually large
retirements, and stale master sets.
"""

import logging
from typing import Any, Dict, List, Optional

import yaml

from recordsync.monitoring.metrics import NAMESPACE

logger = logging.getLogger(__name__)


def _rule(
    name: str,
    expr: str,
    duration: str,
    severity: str,
    component: str,
    summary: str,
    description: str
) -> Dict[str, Any]:
    return {
        "alert": name,
        "expr": expr,
        "for": duration,
        "labels": {
            "severity": severity,
            "component": component
        },
        "annotations": {
            "summary": summary,
            "description": description
        }
    }


class AlertRuleGenerator:
    """Generates Prometheus AlertManager alert rules."""

    def __init__(
        self,
        max_retired_per_sync: int = 500,
        max_drop_ratio: float = 0.2,
        stale_after_hours: int = 48
    ):
        """
        Initialize alert rule generator.

        Args:
            max_retired_per_sync: Deletions per sync above which to warn
            max_drop_ratio: Share of dropped extract rows above which to warn
            stale_after_hours: Hours without a successful sync before warning
        """
        self.max_retired_per_sync = max_retired_per_sync
        self.max_drop_ratio = max_drop_ratio
        self.stale_after_hours = stale_after_hours

    def generate_alert_rules(self) -> Dict[str, Any]:
        """
        Generate complete alert rule configuration.

        Returns:
            Dict with alert rule groups in Prometheus format
        """
        groups = [
            self._generate_sync_alerts(),
            self._generate_ingest_alerts(),
        ]

        logger.info(f"Generated {len(groups)} alert rule groups")
        return {"groups": groups}

    def _generate_sync_alerts(self) -> Dict[str, Any]:
        """Sync failure, partial sync, retirement and staleness alerts."""
        rules = [
            _rule(
                "PartialSync",
                f"increase({NAMESPACE}_sync_failures_total{{phase=\"insert\"}}[15m]) > 0",
                "0m", "critical", "reconciliation",
                "Sync stopped after its delete phase",
                "The insert phase of the {{ $labels.domain }} sync failed after retired "
                "records were deleted. Master is partially reconciled until sync is re-run."
            ),
            _rule(
                "SyncFailures",
                f"increase({NAMESPACE}_sync_failures_total[1h]) > 2",
                "5m", "warning", "reconciliation",
                "Repeated sync failures",
                "{{ $labels.domain }} sync failed {{ $value }} times in the last hour "
                "(phase {{ $labels.phase }})"
            ),
            _rule(
                "LargeRetirement",
                f"increase({NAMESPACE}_rows_deleted_total[10m]) > {self.max_retired_per_sync}",
                "0m", "warning", "reconciliation",
                "Unusually many master records deleted",
                "{{ $labels.domain }} sync deleted {{ $value }} records "
                f"(threshold: {self.max_retired_per_sync}). Check the extract was complete."
            ),
            _rule(
                "StaleMasterSet",
                f"time() - {NAMESPACE}_last_sync_timestamp_seconds > {self.stale_after_hours * 3600}",
                "30m", "info", "reconciliation",
                "No recent sync",
                "{{ $labels.domain }} has not been synced for more than "
                f"{self.stale_after_hours} hours"
            ),
        ]
        return {"name": f"{NAMESPACE}_sync", "interval": "1m", "rules": rules}

    def _generate_ingest_alerts(self) -> Dict[str, Any]:
        """Upload failure and row drop alerts."""
        drop_ratio = (
            f"sum by (domain) (increase({NAMESPACE}_rows_dropped_total[1h])) / "
            f"sum by (domain) (increase({NAMESPACE}_rows_read_total[1h]))"
        )
        rules = [
            _rule(
                "UploadFailures",
                f"increase({NAMESPACE}_uploads_total{{status=\"failure\"}}[1h]) > 0",
                "0m", "warning", "ingest",
                "Extract upload rejected",
                "An upload for {{ $labels.domain }} was rejected in the last hour"
            ),
            _rule(
                "HighRowDropRate",
                f"{drop_ratio} > {self.max_drop_ratio}",
                "0m", "warning", "ingest",
                "Many extract rows dropped",
                "{{ $value | humanizePercentage }} of {{ $labels.domain }} rows were dropped "
                f"during normalization (threshold: {self.max_drop_ratio:.0%})"
            ),
        ]
        return {"name": f"{NAMESPACE}_ingest", "interval": "1m", "rules": rules}

    def to_yaml(self) -> str:
        """Alert rules rendered as YAML."""
        return yaml.safe_dump(self.generate_alert_rules(), default_flow_style=False, sort_keys=False)

    def export_to_yaml(self, output_file: str) -> None:
        """
        Export alert rules to YAML file.

        Args:
            output_file: Path to output YAML file
        """
        with open(output_file, "w") as f:
            f.write(self.to_yaml())

        logger.info(f"Alert rules exported to {output_file}")

    def get_alert_summary(self, rules: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
        """
        Get summary of alert rules.

        Returns:
            Dict with counts by severity
        """
        rules = rules or self.generate_alert_rules()
        all_rules: List[Dict[str, Any]] = [r for g in rules["groups"] for r in g["rules"]]

        summary = {
            "total_groups": len(rules["groups"]),
            "total_alerts": len(all_rules),
            "critical": 0,
            "warning": 0,
            "info": 0
        }

        for rule in all_rules:
            severity = rule["labels"].get("severity", "unknown")
            if severity in summary:
                summary[severity] += 1

        return summary
