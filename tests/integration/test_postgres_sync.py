"""
PostgreSQL Integration Tests for Record Sync

Runs staging, reconciliation, annotation and export against a live
PostgreSQL server, each test module in its own throwaway schema.
"""

import os
import uuid
from datetime import date

import psycopg2
import pytest
from psycopg2 import sql

from recordsync.domains import DOMAINS, INVOICES, QUOTES
from recordsync.exceptions import NotFoundError, StoreError

pytestmark = pytest.mark.integration


def connection_params():
    return {
        "host": os.getenv("DB_HOST", "localhost"),
        "port": int(os.getenv("DB_PORT", "5432")),
        "database": os.getenv("DB_NAME", "recordsync"),
        "user": os.getenv("DB_USER", "postgres"),
        "password": os.getenv("DB_PASSWORD", "postgres"),
    }


@pytest.fixture(scope="module")
def db_schema():
    """Create a unique schema and drop it afterwards."""
    try:
        conn = psycopg2.connect(**connection_params())
    except psycopg2.OperationalError as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    name = f"recordsync_test_{uuid.uuid4().hex[:8]}"
    yield name

    conn.autocommit = True
    with conn.cursor() as cursor:
        cursor.execute(sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(sql.Identifier(name)))
    conn.close()


@pytest.fixture
def pg_store(db_schema):
    from recordsync.store.postgres import PostgresStore

    store = PostgresStore(db_schema=db_schema, **connection_params())
    for schema in DOMAINS.values():
        store.ensure_schema(schema)
    store.replace_staging(INVOICES, [])
    store.replace_staging(QUOTES, [])
    store.delete_master(INVOICES, store.master_keys(INVOICES))
    store.delete_master(QUOTES, store.master_keys(QUOTES))
    yield store
    store.close()


@pytest.fixture
def pipeline(pg_store, metrics):
    from recordsync.pipeline import RecordSyncPipeline
    return RecordSyncPipeline(pg_store, metrics=metrics)


class TestPostgresSync:
    """Reconciliation against real tables."""

    def test_upload_and_sync(self, pipeline, pg_store, invoice_csv):
        summary = pipeline.upload(invoice_csv)

        assert summary["sync"]["inserted"] == 3
        assert pg_store.master_keys(INVOICES) == {"A", "B", "C"}

    def test_retire_and_add_preserves_annotations(self, pipeline, pg_store):
        pipeline.stage("quotes", [{"quote": "Q-1", "name": "Acme"}, {"quote": "Q-2", "name": "Beta"}])
        pipeline.sync("quotes")
        pipeline.annotate("quotes", "Q-2", "Sent reminder", date(2024, 5, 1))

        pipeline.stage("quotes", [{"quote": "Q-2", "name": "Beta"}, {"quote": "Q-3", "name": "Gamma"}])
        result = pipeline.sync("quotes")

        assert (result.deleted, result.inserted) == (1, 1)
        by_key = {row["quote"]: row for row in pg_store.fetch_master(QUOTES)}
        assert set(by_key) == {"Q-2", "Q-3"}
        assert by_key["Q-2"]["note"] == "Sent reminder"
        assert by_key["Q-2"]["action_date"] == date(2024, 5, 1)
        assert by_key["Q-3"]["note"] == ""
        assert by_key["Q-3"]["action_date"] is None

    def test_second_sync_is_noop(self, pipeline):
        pipeline.stage("quotes", [{"quote": "Q-1"}])
        pipeline.sync("quotes")

        result = pipeline.sync("quotes")

        assert (result.deleted, result.inserted) == (0, 0)

    def test_quote_in_key_is_stored_verbatim(self, pipeline, pg_store):
        pipeline.stage("quotes", [{"quote": "O'Brien-7", "name": "O'Brien"}])
        pipeline.sync("quotes")

        assert pg_store.master_keys(QUOTES) == {"O'Brien-7"}

    def test_duplicate_insert_rolls_back(self, pg_store):
        pg_store.replace_staging(QUOTES, [{"quote": "Q-1"}])
        pg_store.insert_master_from_staging(QUOTES, ["Q-1"])

        with pytest.raises(StoreError) as exc_info:
            pg_store.insert_master_from_staging(QUOTES, ["Q-1"])

        assert exc_info.value.phase == "insert"
        assert pg_store.master_keys(QUOTES) == {"Q-1"}

    def test_annotate_missing_key(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.annotate("invoices", "nope", "x", None)

    def test_export(self, pipeline):
        pipeline.stage("invoices", [
            {"invoice": "1", "customer_name": "Acme", "due_date": "2024-03-01", "total_amount": "10"},
            {"invoice": "2", "customer_name": "Beta", "due_date": "2024-03-05", "total_amount": "20.5"},
        ])
        pipeline.sync("invoices")

        lines = pipeline.export("invoices").splitlines()

        assert lines[1].startswith('"2","03/05/2024","Beta"')
        assert lines[2].startswith('"1","03/01/2024","Acme"')
