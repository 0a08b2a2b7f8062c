"""
Pytest configuration and shared fixtures.

Unit tests run against InMemoryStore. Integration tests need a PostgreSQL
instance (DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD) and are skipped
when none is reachable.
"""

import csv
from datetime import date
from decimal import Decimal

import pytest
from prometheus_client import CollectorRegistry

INVOICE_HEADER = ["#", "Invoice", "Due Date", "Customer Name", "Service Location", "Total Amount", "Customer Email"]


def invoice_row(invoice, customer="Acme Co", due="03/05/2024", amount="$1,234.56"):
    """Raw extract row keyed by label, as the reader produces it."""
    return {
        "#": "1",
        "Invoice": invoice,
        "Due Date": due,
        "Customer Name": customer,
        "Service Location": "Main St",
        "Total Amount": amount,
        "Customer Email": "billing@example.com",
    }


def master_invoice(invoice, note="", action_date=None, due=date(2024, 3, 5)):
    """Master row for seeding InMemoryStore."""
    return {
        "invoice": invoice,
        "due_date": due,
        "customer_name": f"Customer {invoice}",
        "total_amount": Decimal("100.00"),
        "note": note,
        "action_date": action_date,
    }


def write_csv(path, header, rows):
    """Write a CSV extract; rows are lists in header order."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


@pytest.fixture
def store():
    """Empty in-memory store with both domains initialized."""
    from recordsync.domains import DOMAINS
    from recordsync.store.memory import InMemoryStore

    memory = InMemoryStore()
    for schema in DOMAINS.values():
        memory.ensure_schema(schema)
    return memory


@pytest.fixture
def invoices():
    from recordsync.domains import INVOICES
    return INVOICES


@pytest.fixture
def quotes():
    from recordsync.domains import QUOTES
    return QUOTES


@pytest.fixture
def metrics():
    """Metrics collector on a private registry."""
    from recordsync.monitoring.metrics import MetricsCollector
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def invoice_csv(tmp_path):
    """Invoice extract with invoices A, B and C plus a totals row."""
    rows = [
        ["1", "A", "03/05/2024", "Acme Co", "Main St", "$1,234.56", "a@example.com"],
        ["2", "B", "2024-03-01", "Beta LLC", "Oak Ave", "200", "b@example.com"],
        ["3", "C", "March 7, 2024", "Gamma Inc", "", "(50.00)", ""],
        ["", "", "", "Totals", "", "$1,384.56", ""],
    ]
    return write_csv(tmp_path / "past_due_2024-03-08.csv", INVOICE_HEADER, rows)


@pytest.fixture
def make_invoice_row():
    return invoice_row


@pytest.fixture
def make_master_invoice():
    return master_invoice


@pytest.fixture
def make_csv(tmp_path):
    """Write a CSV extract under tmp_path and return its path."""
    def _make(name, header, rows):
        return write_csv(tmp_path / name, header, rows)
    return _make
