"""
Annotation Updater for Record Sync

Sets the user-entered follow-up fields (note, action date) on one master
record. Staging is never touched and no reconciliation is triggered.
"""

import logging
from datetime import date
from typing import Any, Optional, Union

from recordsync.domains import get_schema
from recordsync.exceptions import NotFoundError, ValidationError
from recordsync.ingest.converters import parse_date
from recordsync.store.base import RecordStore

logger = logging.getLogger(__name__)


class AnnotationUpdater:
    """Writes note and action date onto master records."""

    def __init__(self, store: RecordStore, metrics=None):
        """
        Initialize the updater.

        Args:
            store: Store holding the master tables
            metrics: Optional IngestMetrics to count annotation outcomes on
        """
        self.store = store
        self.metrics = metrics

    def annotate(
        self,
        domain: str,
        key: str,
        note: Optional[str],
        action_date: Union[date, str, None]
    ) -> None:
        """
        Set the annotation fields of one master record.

        Args:
            domain: Domain name
            key: Identity key of the master record
            note: Free-text note (None clears it to "")
            action_date: A date, an accepted date string, or empty/None to clear

        Raises:
            ValidationError: If the domain is unknown or the date is unreadable
            NotFoundError: If no master record has the key
            StoreError: If the update transaction fails
        """
        schema = get_schema(domain)
        parsed_date = self.parse_action_date(action_date)
        note = "" if note is None else str(note)

        updated = self.store.update_annotations(schema, key, note, parsed_date)

        if updated == 0:
            logger.warning(f"Annotation target not found: {domain} key '{key}'")
            self._record(domain, "not_found")
            raise NotFoundError(domain, key)

        logger.info(f"Updated annotations for {domain} key '{key}'")
        self._record(domain, "success")

    @staticmethod
    def parse_action_date(value: Any) -> Optional[date]:
        """
        Parse an action date input.

        Raises:
            ValidationError: If a non-empty value is not a readable date
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return None

        parsed = parse_date(value)
        if parsed is None:
            raise ValidationError(f"Invalid action date: {value!r}")

        return parsed

    def _record(self, domain: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_annotation(domain, status)
