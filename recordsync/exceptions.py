"""
Exception types for the record sync pipeline.

Every failure surfaces to the caller; nothing in the pipeline retries on its own.
"""

from typing import Any, Dict, Optional


class RecordSyncError(Exception):
    """Base class for all record sync errors."""
    pass


class ValidationError(RecordSyncError):
    """Raised when an upload or payload is malformed. No store mutation has happened."""
    pass


class ConfigError(RecordSyncError, ValueError):
    """Raised when configuration values are missing or invalid."""
    pass


class NotFoundError(RecordSyncError):
    """Raised when an annotation targets a key that is not in the master set."""

    def __init__(self, domain: str, key: str):
        self.domain = domain
        self.key = key
        super().__init__(f"No {domain} record with key '{key}'")


class StoreError(RecordSyncError):
    """
    Raised when a store transaction fails.

    Attributes:
        phase: Phase that failed ("stage", "delete", "insert", "annotate", "read")
        deleted: Master rows deleted by phases that committed before the failure
        inserted: Master rows inserted by phases that committed before the failure
    """

    def __init__(
        self,
        message: str,
        phase: Optional[str] = None,
        deleted: int = 0,
        inserted: int = 0
    ):
        self.phase = phase
        self.deleted = deleted
        self.inserted = inserted
        super().__init__(message)

    @property
    def partial(self) -> bool:
        """True when the delete phase removed rows but the insert phase failed."""
        return self.phase == "insert" and self.deleted > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "phase": self.phase,
            "partial": self.partial,
            "deleted": self.deleted,
            "inserted": self.inserted,
        }
