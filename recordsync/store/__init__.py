"""
Store Module for Record Sync

Master and staging persistence behind one RecordStore contract.

Main components:
- base: The RecordStore contract
- postgres: psycopg2-backed store
- memory: Dictionary-backed store for dry runs and tests
"""

from recordsync.store.base import RecordStore
from recordsync.store.memory import InMemoryStore
from recordsync.store.postgres import PostgresStore

__all__ = [
    "RecordStore",
    "InMemoryStore",
    "PostgresStore",
    "create_store",
]


def create_store(settings) -> RecordStore:
    """
    Build the store named by settings.store.

    Args:
        settings: recordsync.config.Settings
    """
    if settings.store == "memory":
        return InMemoryStore()

    return PostgresStore(**settings.database.connection_kwargs())
