"""
Sync Planner for Record Sync Reconciliation

Turns a key diff into an ordered list of sync actions (DELETE before INSERT).
The actions are descriptive: they are logged, printed by the CLI for dry runs
and carried in reports. The store executes the set-based statements itself.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from recordsync.domains import DomainSchema
from recordsync.reconciliation.differ import KeyDiff

logger = logging.getLogger(__name__)


class SyncPlanner:
    """
    Generates sync actions for a key diff.

    Creates actions to:
    - DELETE retired master records
    - INSERT new records from staging
    """

    def __init__(self, db_schema: str = "public"):
        """
        Initialize the planner.

        Args:
            db_schema: Schema name used in the rendered statements
        """
        self.db_schema = db_schema
        logger.debug("Initialized SyncPlanner")

    def generate_sync_plan(
        self,
        diff: KeyDiff,
        schema: DomainSchema,
        dry_run: bool = False,
        include_metadata: bool = True
    ) -> List[Dict[str, Any]]:
        """
        Generate all sync actions for a diff.

        Args:
            diff: Key diff between staging and master
            schema: Domain being reconciled
            dry_run: If True, mark actions as dry-run
            include_metadata: Include generation metadata

        Returns:
            List of sync actions, deletes first
        """
        delete_actions = self.generate_delete_actions(diff.retired, schema)
        insert_actions = self.generate_insert_actions(diff.new, schema)
        actions = delete_actions + insert_actions

        timestamp = datetime.now(timezone.utc).isoformat()
        for action in actions:
            action["dry_run"] = dry_run
            action["status"] = "pending"

            if include_metadata:
                action["generated_at"] = timestamp
                action["domain"] = schema.name

        logger.info(
            f"Generated {len(actions)} sync actions for {schema.name}: "
            f"{len(delete_actions)} DELETE, {len(insert_actions)} INSERT"
        )

        return actions

    def generate_delete_actions(self, keys: Iterable[str], schema: DomainSchema) -> List[Dict[str, Any]]:
        """
        Generate DELETE actions for retired keys.

        Args:
            keys: Master keys missing from staging
            schema: Domain schema

        Returns:
            List of DELETE actions, sorted by key
        """
        table_ref = self._format_table_name(schema.master_table)

        return [
            {
                "action_type": "DELETE",
                "table": table_ref,
                "key": key,
                "sql": f"DELETE FROM {table_ref} WHERE {schema.key_column} = {self._format_value(key)};",
            }
            for key in sorted(keys)
        ]

    def generate_insert_actions(self, keys: Iterable[str], schema: DomainSchema) -> List[Dict[str, Any]]:
        """
        Generate INSERT actions for new keys.

        The rendered statement projects domain columns from staging and
        initializes the annotation columns empty.

        Args:
            keys: Staging keys missing from master
            schema: Domain schema

        Returns:
            List of INSERT actions, sorted by key
        """
        table_ref = self._format_table_name(schema.master_table)
        staging_ref = self._format_table_name(schema.staging_table)
        columns = ", ".join(schema.columns)
        projection = ", ".join(schema.domain_columns)

        return [
            {
                "action_type": "INSERT",
                "table": table_ref,
                "key": key,
                "sql": (
                    f"INSERT INTO {table_ref} ({columns}) "
                    f"SELECT {projection}, '', NULL FROM {staging_ref} "
                    f"WHERE {schema.key_column} = {self._format_value(key)};"
                ),
            }
            for key in sorted(keys)
        ]

    def _format_table_name(self, table_name: str) -> str:
        return f"{self.db_schema}.{table_name}"

    def _format_value(self, value: Any) -> str:
        """
        Format a value as a SQL literal.

        Args:
            value: Value to format

        Returns:
            SQL-formatted value string
        """
        if value is None:
            return "NULL"

        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"
