"""
In-memory record store.

Each mutation builds a new table dict and swaps it in only once the whole
change succeeded, so readers never see a half-applied transaction.
"""

import copy
import logging
import threading
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from recordsync.domains import NOTE_COLUMN, ACTION_DATE_COLUMN, DomainSchema
from recordsync.exceptions import StoreError
from recordsync.store.base import RecordStore

logger = logging.getLogger(__name__)


class InMemoryStore(RecordStore):
    """Dictionary-backed store keyed by table name, then identity key."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        logger.debug("Initialized InMemoryStore")

    def ensure_schema(self, schema: DomainSchema) -> None:
        with self._lock:
            self._tables.setdefault(schema.master_table, {})
            self._tables.setdefault(schema.staging_table, {})

    def replace_staging(self, schema: DomainSchema, rows: Sequence[Dict[str, Any]]) -> int:
        snapshot: Dict[str, Dict[str, Any]] = {}

        try:
            for row in rows:
                staged = {column: row.get(column) for column in schema.domain_columns}
                staged[NOTE_COLUMN] = None
                staged[ACTION_DATE_COLUMN] = None
                snapshot[schema.identity_key(staged)] = staged
        except (KeyError, ValueError) as e:
            raise StoreError(f"Cannot stage {schema.name} rows: {e}", phase="stage") from e

        with self._lock:
            self._tables[schema.staging_table] = snapshot

        logger.info(f"Staged {len(snapshot)} rows into {schema.staging_table}")
        return len(snapshot)

    def staging_keys(self, schema: DomainSchema) -> Set[str]:
        with self._lock:
            return set(self._table(schema.staging_table))

    def master_keys(self, schema: DomainSchema) -> Set[str]:
        with self._lock:
            return set(self._table(schema.master_table))

    def delete_master(self, schema: DomainSchema, keys: Iterable[str]) -> int:
        keys = set(keys)

        with self._lock:
            master = self._table(schema.master_table)
            remaining = {k: row for k, row in master.items() if k not in keys}
            deleted = len(master) - len(remaining)
            self._tables[schema.master_table] = remaining

        logger.info(f"Deleted {deleted} rows from {schema.master_table}")
        return deleted

    def insert_master_from_staging(self, schema: DomainSchema, keys: Iterable[str]) -> int:
        keys = set(keys)

        with self._lock:
            staging = self._table(schema.staging_table)
            master = self._table(schema.master_table)

            updated = dict(master)
            inserted = 0
            for key in keys:
                if key not in staging:
                    continue
                if key in updated:
                    raise StoreError(
                        f"Duplicate key '{key}' in {schema.master_table}",
                        phase="insert"
                    )
                updated[key] = schema.project(staging[key])
                inserted += 1

            self._tables[schema.master_table] = updated

        logger.info(f"Inserted {inserted} rows into {schema.master_table}")
        return inserted

    def update_annotations(
        self,
        schema: DomainSchema,
        key: str,
        note: str,
        action_date: Optional[date]
    ) -> int:
        with self._lock:
            master = self._table(schema.master_table)
            if key not in master:
                return 0

            row = dict(master[key])
            row[NOTE_COLUMN] = note
            row[ACTION_DATE_COLUMN] = action_date

            updated = dict(master)
            updated[key] = row
            self._tables[schema.master_table] = updated

        return 1

    def fetch_master(self, schema: DomainSchema) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(row) for _, row in sorted(self._table(schema.master_table).items())]

    def fetch_staging(self, schema: DomainSchema) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._table(schema.staging_table).values()]

    def seed_master(self, schema: DomainSchema, rows: Sequence[Dict[str, Any]]) -> None:
        """Load master rows directly, bypassing reconciliation."""
        with self._lock:
            master = dict(self._table(schema.master_table))
            for row in rows:
                full = {column: row.get(column) for column in schema.columns}
                if full[NOTE_COLUMN] is None:
                    full[NOTE_COLUMN] = ""
                master[schema.identity_key(full)] = full
            self._tables[schema.master_table] = master

    def _table(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.get(name, {})
