"""
PostgreSQL Record Store

Master and staging tables for each domain live in one PostgreSQL schema and
share the same column shape, so the insert phase is a straight column
projection from staging into master.

Each mutating call runs as its own transaction; psycopg2 errors are rolled
back and surfaced as StoreError tagged with the phase that failed.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor, execute_values

from recordsync.domains import ACTION_DATE_COLUMN, NOTE_COLUMN, DomainSchema, FieldType
from recordsync.exceptions import StoreError
from recordsync.store.base import RecordStore

logger = logging.getLogger(__name__)

COLUMN_TYPES = {
    FieldType.TEXT: "TEXT",
    FieldType.DATE: "DATE",
    FieldType.CURRENCY: "NUMERIC(12, 2)",
}


class PostgresStore(RecordStore):
    """
    psycopg2-backed store.

    Either pass an open connection, or connection parameters and let the
    store connect lazily on first use.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "recordsync",
        user: str = "postgres",
        password: str = "postgres",
        db_schema: str = "public",
        batch_size: int = 1000,
        connection=None
    ):
        """
        Initialize the store.

        Args:
            host: PostgreSQL host
            port: PostgreSQL port
            database: Database name
            user: Username
            password: Password
            db_schema: Schema holding the master and staging tables
            batch_size: Rows per page for bulk staging writes
            connection: Existing psycopg2 connection to use instead
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.db_schema = db_schema
        self.batch_size = batch_size
        self._conn = connection

        logger.info(f"PostgresStore initialized for {host}:{port}/{database} (schema {db_schema})")

    def connect(self):
        """Return the open connection, connecting first if needed."""
        if self._conn is None or self._conn.closed:
            logger.info(f"Connecting to PostgreSQL at {self.host}:{self.port}")
            try:
                self._conn = psycopg2.connect(
                    host=self.host,
                    port=self.port,
                    database=self.database,
                    user=self.user,
                    password=self.password
                )
            except psycopg2.Error as e:
                logger.error(f"Failed to connect to PostgreSQL: {e}")
                raise StoreError(f"Connection failed: {e}", phase="connect") from e
        return self._conn

    def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
            logger.info("PostgreSQL connection closed")
        self._conn = None

    @contextmanager
    def transaction(self, phase: str, cursor_factory=None):
        """
        Run a block as one transaction.

        Commits when the block finishes, rolls back on any error. psycopg2
        errors are re-raised as StoreError carrying the phase.
        """
        conn = self.connect()
        try:
            with conn.cursor(cursor_factory=cursor_factory) as cursor:
                yield cursor
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Transaction failed during {phase}: {e}")
            raise StoreError(f"{phase} failed: {e}", phase=phase) from e
        except Exception:
            conn.rollback()
            raise

    def ensure_schema(self, schema: DomainSchema) -> None:
        with self.transaction("schema") as cursor:
            cursor.execute(
                sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.db_schema))
            )
            for table, note_type in ((schema.master_table, "TEXT NOT NULL DEFAULT ''"),
                                     (schema.staging_table, "TEXT")):
                cursor.execute(
                    sql.SQL("CREATE TABLE IF NOT EXISTS {} ({})").format(
                        self._table(table),
                        sql.SQL(", ").join(self._column_defs(schema, note_type))
                    )
                )

        logger.info(f"Ensured tables {schema.master_table} and {schema.staging_table}")

    def _column_defs(self, schema: DomainSchema, note_type: str) -> List[sql.Composable]:
        defs = [sql.SQL("{} VARCHAR(255) PRIMARY KEY").format(sql.Identifier(schema.key_column))]
        for fld in schema.fields:
            defs.append(sql.SQL("{} " + COLUMN_TYPES[fld.type]).format(sql.Identifier(fld.column)))
        defs.append(sql.SQL("{} " + note_type).format(sql.Identifier(NOTE_COLUMN)))
        defs.append(sql.SQL("{} DATE").format(sql.Identifier(ACTION_DATE_COLUMN)))
        return defs

    def replace_staging(self, schema: DomainSchema, rows: Sequence[Dict[str, Any]]) -> int:
        columns = schema.domain_columns
        values = [tuple(row.get(column) for column in columns) for row in rows]

        with self.transaction("stage") as cursor:
            cursor.execute(sql.SQL("DELETE FROM {}").format(self._table(schema.staging_table)))

            if values:
                query = sql.SQL("INSERT INTO {} ({}) VALUES %s").format(
                    self._table(schema.staging_table),
                    self._columns(columns)
                )
                execute_values(cursor, query, values, page_size=self.batch_size)

        logger.info(f"Staged {len(values)} rows into {self.db_schema}.{schema.staging_table}")
        return len(values)

    def staging_keys(self, schema: DomainSchema) -> Set[str]:
        return self._keys(schema, schema.staging_table)

    def master_keys(self, schema: DomainSchema) -> Set[str]:
        return self._keys(schema, schema.master_table)

    def delete_master(self, schema: DomainSchema, keys: Iterable[str]) -> int:
        keys = sorted(keys)
        if not keys:
            return 0

        query = sql.SQL("DELETE FROM {} WHERE {} = ANY(%s)").format(
            self._table(schema.master_table),
            sql.Identifier(schema.key_column)
        )

        with self.transaction("delete") as cursor:
            cursor.execute(query, (keys,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} rows from {self.db_schema}.{schema.master_table}")
        return deleted

    def insert_master_from_staging(self, schema: DomainSchema, keys: Iterable[str]) -> int:
        keys = sorted(keys)
        if not keys:
            return 0

        domain = [sql.Identifier(column) for column in schema.domain_columns]
        query = sql.SQL(
            "INSERT INTO {master} ({columns}) "
            "SELECT {projection}, %s, NULL FROM {staging} WHERE {key} = ANY(%s)"
        ).format(
            master=self._table(schema.master_table),
            columns=self._columns(schema.columns),
            projection=sql.SQL(", ").join(domain),
            staging=self._table(schema.staging_table),
            key=sql.Identifier(schema.key_column)
        )

        with self.transaction("insert") as cursor:
            cursor.execute(query, ("", keys))
            inserted = cursor.rowcount

        logger.info(f"Inserted {inserted} rows into {self.db_schema}.{schema.master_table}")
        return inserted

    def update_annotations(
        self,
        schema: DomainSchema,
        key: str,
        note: str,
        action_date: Optional[date]
    ) -> int:
        query = sql.SQL("UPDATE {} SET {} = %s, {} = %s WHERE {} = %s").format(
            self._table(schema.master_table),
            sql.Identifier(NOTE_COLUMN),
            sql.Identifier(ACTION_DATE_COLUMN),
            sql.Identifier(schema.key_column)
        )

        with self.transaction("annotate") as cursor:
            cursor.execute(query, (note, action_date, key))
            return cursor.rowcount

    def fetch_master(self, schema: DomainSchema) -> List[Dict[str, Any]]:
        return self._fetch_all(schema, schema.master_table)

    def fetch_staging(self, schema: DomainSchema) -> List[Dict[str, Any]]:
        return self._fetch_all(schema, schema.staging_table)

    def _keys(self, schema: DomainSchema, table: str) -> Set[str]:
        query = sql.SQL("SELECT {} FROM {}").format(
            sql.Identifier(schema.key_column),
            self._table(table)
        )

        with self.transaction("read") as cursor:
            cursor.execute(query)
            return {str(row[0]) for row in cursor.fetchall()}

    def _fetch_all(self, schema: DomainSchema, table: str) -> List[Dict[str, Any]]:
        query = sql.SQL("SELECT {} FROM {} ORDER BY {}").format(
            self._columns(schema.columns),
            self._table(table),
            sql.Identifier(schema.key_column)
        )

        with self.transaction("read", cursor_factory=RealDictCursor) as cursor:
            cursor.execute(query)
            rows = [dict(row) for row in cursor.fetchall()]

        logger.debug(f"Fetched {len(rows)} rows from {self.db_schema}.{table}")
        return rows

    def _table(self, table: str) -> sql.Composable:
        return sql.Identifier(self.db_schema, table)

    def _columns(self, columns: Sequence[str]) -> sql.Composable:
        return sql.SQL(", ").join(sql.Identifier(column) for column in columns)
