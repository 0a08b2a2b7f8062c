"""
Store contract shared by the master/staging backends.

Every mutating method is one atomic transaction: it either commits fully or
leaves the store as it was and raises StoreError.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from recordsync.domains import DomainSchema


class RecordStore(ABC):
    """Persistence for one master table and one staging table per domain."""

    @abstractmethod
    def ensure_schema(self, schema: DomainSchema) -> None:
        """Create the master and staging tables for a domain if missing."""

    @abstractmethod
    def replace_staging(self, schema: DomainSchema, rows: Sequence[Dict[str, Any]]) -> int:
        """
        Discard every staged row for the domain and write the new snapshot.

        Rows carry domain columns only; columns a row lacks are stored NULL.

        Returns:
            Number of rows staged
        """

    @abstractmethod
    def staging_keys(self, schema: DomainSchema) -> Set[str]:
        """Identity keys of the current staging snapshot."""

    @abstractmethod
    def master_keys(self, schema: DomainSchema) -> Set[str]:
        """Identity keys currently in the master set."""

    @abstractmethod
    def delete_master(self, schema: DomainSchema, keys: Iterable[str]) -> int:
        """
        Delete master records by key.

        Returns:
            Number of rows deleted
        """

    @abstractmethod
    def insert_master_from_staging(self, schema: DomainSchema, keys: Iterable[str]) -> int:
        """
        Create master records from the staged rows with the given keys.

        Domain columns are projected from staging; annotations start empty.

        Returns:
            Number of rows inserted
        """

    @abstractmethod
    def update_annotations(
        self,
        schema: DomainSchema,
        key: str,
        note: str,
        action_date: Optional[date]
    ) -> int:
        """
        Set note and action date on one master record.

        Returns:
            Number of rows updated (0 when the key is unknown)
        """

    @abstractmethod
    def fetch_master(self, schema: DomainSchema) -> List[Dict[str, Any]]:
        """All master rows for the domain."""

    @abstractmethod
    def fetch_staging(self, schema: DomainSchema) -> List[Dict[str, Any]]:
        """All staged rows for the domain."""

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
