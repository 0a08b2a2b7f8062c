"""
Unit tests for the record stores.

InMemoryStore is exercised directly; PostgresStore runs against a mocked
psycopg2 connection.
"""

from datetime import date
from unittest.mock import MagicMock, patch

import psycopg2
import pytest
from psycopg2.extras import RealDictCursor

from recordsync.exceptions import StoreError


class TestInMemoryStore:
    """Test the dictionary-backed store."""

    def test_replace_staging_discards_previous_snapshot(self, store, invoices):
        store.replace_staging(invoices, [{"invoice": "A"}, {"invoice": "B"}])
        store.replace_staging(invoices, [{"invoice": "C"}])

        assert store.staging_keys(invoices) == {"C"}

    def test_staged_annotations_are_null(self, store, invoices):
        store.replace_staging(invoices, [{"invoice": "A", "note": "sneaky"}])

        row = store.fetch_staging(invoices)[0]

        assert row["note"] is None
        assert row["action_date"] is None
        assert row["customer_name"] is None

    def test_failed_replace_keeps_old_snapshot(self, store, invoices):
        store.replace_staging(invoices, [{"invoice": "A"}])

        with pytest.raises(StoreError) as exc_info:
            store.replace_staging(invoices, [{"invoice": "B"}, {"customer_name": "no key"}])

        assert exc_info.value.phase == "stage"
        assert store.staging_keys(invoices) == {"A"}

    def test_insert_projects_from_staging(self, store, quotes):
        store.replace_staging(quotes, [{"quote": "Q-1", "name": "Acme"}, {"quote": "Q-2", "name": "Beta"}])

        inserted = store.insert_master_from_staging(quotes, ["Q-1", "Q-9"])

        assert inserted == 1
        assert store.fetch_master(quotes) == [
            {"quote": "Q-1", "name": "Acme", "total_amount": None, "note": "", "action_date": None}
        ]

    def test_insert_existing_key_fails_whole_transaction(self, store, quotes):
        store.replace_staging(quotes, [{"quote": "Q-1"}, {"quote": "Q-2"}])
        store.insert_master_from_staging(quotes, ["Q-1"])

        with pytest.raises(StoreError, match="Duplicate key"):
            store.insert_master_from_staging(quotes, ["Q-1", "Q-2"])

        assert store.master_keys(quotes) == {"Q-1"}

    def test_delete_master(self, store, invoices, make_master_invoice):
        store.seed_master(invoices, [make_master_invoice(k) for k in ("A", "B", "C")])

        deleted = store.delete_master(invoices, ["A", "C", "Z"])

        assert deleted == 2
        assert store.master_keys(invoices) == {"B"}

    def test_update_annotations(self, store, invoices, make_master_invoice):
        store.seed_master(invoices, [make_master_invoice("A")])

        assert store.update_annotations(invoices, "A", "hi", date(2024, 1, 2)) == 1
        assert store.update_annotations(invoices, "Z", "hi", None) == 0
        assert store.fetch_master(invoices)[0]["note"] == "hi"

    def test_fetch_returns_copies(self, store, invoices, make_master_invoice):
        store.seed_master(invoices, [make_master_invoice("A")])

        store.fetch_master(invoices)[0]["note"] = "mutated"

        assert store.fetch_master(invoices)[0]["note"] == ""

    def test_domains_are_isolated(self, store, invoices, quotes):
        store.replace_staging(invoices, [{"invoice": "1"}])

        assert store.staging_keys(quotes) == set()


class TestPostgresStore:
    """Test SQL execution and transaction handling with a mocked connection."""

    @pytest.fixture
    def cursor(self):
        cursor = MagicMock()
        cursor.rowcount = 0
        return cursor

    @pytest.fixture
    def connection(self, cursor):
        conn = MagicMock()
        conn.closed = 0
        conn.cursor.return_value.__enter__.return_value = cursor
        return conn

    @pytest.fixture
    def pg_store(self, connection):
        from recordsync.store.postgres import PostgresStore
        return PostgresStore(db_schema="billing", batch_size=500, connection=connection)

    def test_connects_lazily_with_parameters(self):
        from recordsync.store.postgres import PostgresStore

        with patch("recordsync.store.postgres.psycopg2.connect") as mock_connect:
            store = PostgresStore(host="db", port=5433, database="rs", user="u", password="p")
            mock_connect.assert_not_called()

            store.connect()

        mock_connect.assert_called_once_with(host="db", port=5433, database="rs", user="u", password="p")

    def test_connect_failure(self):
        from recordsync.store.postgres import PostgresStore

        with patch("recordsync.store.postgres.psycopg2.connect", side_effect=psycopg2.OperationalError("refused")):
            with pytest.raises(StoreError) as exc_info:
                PostgresStore().connect()

        assert exc_info.value.phase == "connect"

    def test_delete_master_is_set_based(self, pg_store, connection, cursor, invoices):
        cursor.rowcount = 2

        deleted = pg_store.delete_master(invoices, {"B", "A"})

        assert deleted == 2
        cursor.execute.assert_called_once()
        assert cursor.execute.call_args[0][1] == (["A", "B"],)
        connection.commit.assert_called_once()

    def test_delete_nothing_skips_database(self, pg_store, connection, invoices):
        assert pg_store.delete_master(invoices, []) == 0
        connection.cursor.assert_not_called()

    def test_insert_initializes_annotations(self, pg_store, cursor, invoices):
        cursor.rowcount = 1

        inserted = pg_store.insert_master_from_staging(invoices, ["C"])

        assert inserted == 1
        assert cursor.execute.call_args[0][1] == ("", ["C"])

    def test_failure_rolls_back_and_tags_phase(self, pg_store, connection, cursor, invoices):
        cursor.execute.side_effect = psycopg2.Error("deadlock detected")

        with pytest.raises(StoreError) as exc_info:
            pg_store.insert_master_from_staging(invoices, ["C"])

        assert exc_info.value.phase == "insert"
        connection.rollback.assert_called_once()
        connection.commit.assert_not_called()

    def test_replace_staging_clears_then_bulk_writes(self, pg_store, connection, cursor, quotes):
        rows = [{"quote": "Q-1", "name": "Acme"}, {"quote": "Q-2", "total_amount": 5}]

        with patch("recordsync.store.postgres.execute_values") as mock_values:
            staged = pg_store.replace_staging(quotes, rows)

        assert staged == 2
        cursor.execute.assert_called_once()
        args, kwargs = mock_values.call_args
        assert args[0] is cursor
        assert args[2] == [("Q-1", "Acme", None), ("Q-2", None, 5)]
        assert kwargs == {"page_size": 500}
        connection.commit.assert_called_once()

    def test_replace_staging_failure_keeps_old_rows(self, pg_store, connection, quotes):
        with patch("recordsync.store.postgres.execute_values", side_effect=psycopg2.Error("bad value")):
            with pytest.raises(StoreError) as exc_info:
                pg_store.replace_staging(quotes, [{"quote": "Q-1"}])

        assert exc_info.value.phase == "stage"
        connection.rollback.assert_called_once()

    def test_update_annotations(self, pg_store, cursor, invoices):
        cursor.rowcount = 1

        updated = pg_store.update_annotations(invoices, "A", "called", date(2024, 4, 1))

        assert updated == 1
        assert cursor.execute.call_args[0][1] == ("called", date(2024, 4, 1), "A")

    def test_keys(self, pg_store, cursor, invoices):
        cursor.fetchall.return_value = [("A",), ("B",)]

        assert pg_store.master_keys(invoices) == {"A", "B"}

    def test_fetch_master_uses_dict_rows(self, pg_store, connection, cursor, quotes):
        cursor.fetchall.return_value = [{"quote": "Q-1", "name": "Acme"}]

        rows = pg_store.fetch_master(quotes)

        assert rows == [{"quote": "Q-1", "name": "Acme"}]
        connection.cursor.assert_called_with(cursor_factory=RealDictCursor)

    def test_ensure_schema_creates_schema_and_tables(self, pg_store, cursor, invoices):
        pg_store.ensure_schema(invoices)

        assert cursor.execute.call_count == 3

    def test_close(self, pg_store, connection):
        pg_store.close()

        connection.close.assert_called_once()
