"""
Reconciliation Module for Record Sync

Reconciles a domain's master record set against its staging snapshot by
identity key, leaving annotations on surviving records untouched.

Main components:
- differ: Key set difference between staging and master
- planner: Ordered sync actions (DELETE before INSERT)
- reconciler: Runs the delete and insert phases against a store

Usage:
    from recordsync.reconciliation import Reconciler

    result = Reconciler(store).sync("invoices")
    print(result.to_dict())  # {"domain": "invoices", "deleted": 1, "inserted": 1, ...}
"""

from recordsync.reconciliation.differ import DataDiffer, KeyDiff
from recordsync.reconciliation.planner import SyncPlanner
from recordsync.reconciliation.reconciler import ReconciliationResult, Reconciler

__all__ = [
    "DataDiffer",
    "KeyDiff",
    "SyncPlanner",
    "ReconciliationResult",
    "Reconciler",
]
