"""
Ingest Module for Record Sync

Reads uploaded extracts and normalizes them into typed, keyed records.

Main components:
- reader: Spreadsheet / delimited-text reading and filename checks
- converters: Date, currency and markup conversions
- normalizer: Row-to-record normalization for a domain

Usage:
    from recordsync.ingest import read_upload, Normalizer
    from recordsync.domains import QUOTES

    table = read_upload("quotes_2024-05-01.csv")
    report = Normalizer(QUOTES).normalize_with_report(table.rows, table.labels)
"""

from recordsync.ingest.normalizer import (
    NormalizationReport,
    NormalizedRecord,
    Normalizer,
    normalize,
    records_from_payload,
)
from recordsync.ingest.reader import UploadedTable, check_filename, read_upload, resolve_domain

__all__ = [
    "NormalizationReport",
    "NormalizedRecord",
    "Normalizer",
    "normalize",
    "records_from_payload",
    "UploadedTable",
    "read_upload",
    "resolve_domain",
    "check_filename",
]
