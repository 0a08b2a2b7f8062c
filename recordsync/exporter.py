"""
Exporter for Record Sync

Renders a domain's master set as delimited text with a header row of extract
labels, ordered by the domain's sort column. Every field is quoted.
"""

import csv
import io
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

from recordsync.domains import get_schema
from recordsync.store.base import RecordStore

logger = logging.getLogger(__name__)

EXPORT_DATE_FORMAT = "%m/%d/%Y"
FILENAME_DATE_FORMAT = "%m-%d-%Y"


def export_filename(domain: str, on: Optional[date] = None, ext: str = "csv") -> str:
    """
    Name of an export file, e.g. "invoices_05-01-2024.csv".

    Args:
        domain: Domain name
        on: Date to stamp (defaults to today)
        ext: File extension without the dot
    """
    on = on or date.today()
    return f"{domain}_{on.strftime(FILENAME_DATE_FORMAT)}.{ext}"


def format_cell(value: Any) -> str:
    """String form of a master value for export; None becomes ""."""
    if value is None:
        return ""
    if isinstance(value, date):
        return value.strftime(EXPORT_DATE_FORMAT)
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return str(value)


class Exporter:
    """Exports master records to CSV text."""

    def __init__(self, store: RecordStore):
        self.store = store

    def export(self, domain: str) -> str:
        """
        Export the master set for a domain.

        Args:
            domain: Domain name

        Returns:
            CSV text with a header row and "\\n" line endings

        Raises:
            ValidationError: If the domain is unknown
            StoreError: If the master rows cannot be read
        """
        schema = get_schema(domain)
        fields = schema.all_fields()
        rows = schema.sort_rows(self.store.fetch_master(schema))

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow([fld.label for fld in fields])

        for row in rows:
            writer.writerow([format_cell(row.get(fld.column)) for fld in fields])

        logger.info(f"Exported {len(rows)} {domain} records")
        return buffer.getvalue()

    def write_export(
        self,
        domain: str,
        directory: Union[str, Path] = ".",
        on: Optional[date] = None
    ) -> Path:
        """
        Export a domain into a dated file.

        Returns:
            Path of the written file
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        path = directory / export_filename(domain, on=on)
        path.write_text(self.export(domain), encoding="utf-8")

        logger.info(f"Wrote {domain} export to {path}")
        return path
