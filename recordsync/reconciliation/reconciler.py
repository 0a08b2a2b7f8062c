"""
Reconciler for Record Sync

Brings a domain's master set in line with its staging snapshot:

1. Retired keys (in master, not in staging) are deleted in one transaction
2. New keys (in staging, not in master) are inserted from staging in a second
   transaction, with empty annotations
3. Keys present on both sides are never read or written

A failure in either phase raises StoreError carrying the phase and the counts
committed so far. Running sync again after a failure converges to the same
end state, since each phase only acts on the keys still out of line.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from recordsync.domains import get_schema
from recordsync.exceptions import StoreError
from recordsync.reconciliation.differ import DataDiffer
from recordsync.reconciliation.planner import SyncPlanner
from recordsync.store.base import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """
    Outcome of one sync.

    For a dry run the counts are what a real sync would have done.
    """

    domain: str
    deleted: int = 0
    inserted: int = 0
    dry_run: bool = False
    actions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "domain": self.domain,
            "deleted": self.deleted,
            "inserted": self.inserted,
            "dry_run": self.dry_run,
        }
        if self.dry_run:
            result["actions"] = self.actions
        return result


class Reconciler:
    """Runs the delete and insert phases for one domain against a store."""

    def __init__(
        self,
        store: RecordStore,
        differ: Optional[DataDiffer] = None,
        planner: Optional[SyncPlanner] = None,
        metrics=None
    ):
        """
        Initialize the reconciler.

        Args:
            store: Store holding the master and staging tables
            differ: Key differ (a default one is created when omitted)
            planner: Sync planner (a default one is created when omitted)
            metrics: Optional ReconciliationMetrics to record outcomes on
        """
        self.store = store
        self.differ = differ or DataDiffer()
        self.planner = planner or SyncPlanner(getattr(store, "db_schema", "public"))
        self.metrics = metrics

    def sync(self, domain: str, dry_run: bool = False) -> ReconciliationResult:
        """
        Reconcile master against staging for a domain.

        Args:
            domain: Domain name
            dry_run: Compute the counts and actions without mutating master

        Returns:
            ReconciliationResult with deleted and inserted counts

        Raises:
            ValidationError: If the domain is unknown
            StoreError: If reading keys or either phase fails
        """
        schema = get_schema(domain)
        start_time = time.time()

        try:
            staging_keys = self.store.staging_keys(schema)
            master_keys = self.store.master_keys(schema)
        except StoreError as e:
            self._record_failure(domain, "read")
            raise StoreError(str(e), phase="read") from e

        diff = self.differ.diff_keys(staging_keys, master_keys)

        if dry_run:
            actions = self.planner.generate_sync_plan(diff, schema, dry_run=True)
            logger.info(
                f"Dry run for {domain}: would delete {len(diff.retired)}, "
                f"insert {len(diff.new)}"
            )
            if self.metrics is not None:
                self.metrics.record_sync(
                    domain, len(diff.retired), len(diff.new),
                    time.time() - start_time, dry_run=True
                )
            return ReconciliationResult(
                domain=domain,
                deleted=len(diff.retired),
                inserted=len(diff.new),
                dry_run=True,
                actions=actions
            )

        try:
            deleted = self.store.delete_master(schema, diff.retired)
        except StoreError as e:
            logger.error(f"Delete phase failed for {domain}; master unchanged: {e}")
            self._record_failure(domain, "delete")
            raise StoreError(str(e), phase="delete") from e

        try:
            inserted = self.store.insert_master_from_staging(schema, diff.new)
        except StoreError as e:
            error = StoreError(str(e), phase="insert", deleted=deleted)
            state = "master is partially reconciled" if error.partial else "master unchanged"
            logger.error(f"Insert phase failed for {domain} after deleting {deleted} rows; {state}: {e}")
            self._record_failure(domain, "insert")
            raise error from e

        duration = time.time() - start_time
        if self.metrics is not None:
            self.metrics.record_sync(domain, deleted, inserted, duration)

        logger.info(
            f"Reconciled {domain}: deleted {deleted}, inserted {inserted}, "
            f"kept {diff.surviving} in {duration:.3f}s"
        )

        return ReconciliationResult(domain=domain, deleted=deleted, inserted=inserted)

    def _record_failure(self, domain: str, phase: str) -> None:
        if self.metrics is not None:
            self.metrics.record_sync_failure(domain, phase)
