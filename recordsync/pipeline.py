"""
Record Sync Pipeline

One entry point for the operations a user performs on a domain:

    preview  -> read and normalize an extract, no store access
    upload   -> read, normalize, replace staging, then (optionally) sync
    stage    -> replace staging from an already-normalized payload
    sync     -> reconcile master against staging
    annotate -> set note / action date on one master record
    export   -> render master as CSV
    report   -> counts of master, staging, uncontacted and pending changes

Every operation runs inside a correlation context, and parsing always
completes before the store is touched.
"""

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from recordsync.annotations import AnnotationUpdater
from recordsync.domains import DOMAINS, NOTE_COLUMN, DomainSchema, get_schema
from recordsync.exceptions import RecordSyncError, ValidationError
from recordsync.exporter import Exporter, format_cell
from recordsync.ingest.normalizer import NormalizationReport, Normalizer, records_from_payload
from recordsync.ingest.reader import check_filename, read_upload, resolve_domain
from recordsync.monitoring.metrics import MetricsCollector
from recordsync.reconciliation.differ import DataDiffer
from recordsync.reconciliation.reconciler import ReconciliationResult, Reconciler
from recordsync.store.base import RecordStore
from recordsync.utils.correlation import CorrelationContext

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 20


class RecordSyncPipeline:
    """
    Facade over the reader, normalizer, store, reconciler, annotation
    updater and exporter.
    """

    def __init__(self, store: RecordStore, metrics: Optional[MetricsCollector] = None):
        """
        Initialize the pipeline.

        Args:
            store: Store holding master and staging tables
            metrics: Optional metrics collector
        """
        self.store = store
        self.metrics = metrics
        self.differ = DataDiffer()
        self.reconciler = Reconciler(
            store,
            differ=self.differ,
            metrics=metrics.reconciliation if metrics else None
        )
        self.annotator = AnnotationUpdater(store, metrics=metrics.ingest if metrics else None)
        self.exporter = Exporter(store)

    def init_db(self, domains: Optional[Iterable[str]] = None) -> List[str]:
        """
        Create master and staging tables.

        Args:
            domains: Domains to create (all when omitted)

        Returns:
            Names of the initialized domains
        """
        names = list(domains) if domains else list(DOMAINS)

        with CorrelationContext(operation="init-db"):
            for name in names:
                self.store.ensure_schema(get_schema(name))

        logger.info(f"Initialized tables for {names}")
        return names

    def preview(self, path: Union[str, Path], domain: Optional[str] = None, limit: int = PREVIEW_ROWS) -> Dict[str, Any]:
        """
        Parse an extract without touching the store.

        Args:
            path: Extract file
            domain: Expected domain (resolved from the filename when omitted)
            limit: Number of normalized rows to include

        Returns:
            Domain, row counts, drop counts and the first normalized rows
        """
        schema = self._schema_for(path, domain)

        with CorrelationContext(domain=schema.name, operation="preview"):
            raw_rows, report = self._parse(path, schema)

        return {
            "domain": schema.name,
            "file": Path(path).name,
            "rows_read": len(raw_rows),
            "records": len(report.records),
            "dropped": report.drop_counts(),
            "rows": [
                self._display_row(schema, record.to_row(schema))
                for record in report.records[:limit]
            ],
        }

    def upload(self, path: Union[str, Path], domain: Optional[str] = None, sync: bool = True) -> Dict[str, Any]:
        """
        Stage an extract and, by default, reconcile master against it.

        Args:
            path: Extract file
            domain: Expected domain (resolved from the filename when omitted)
            sync: Run the reconciler after staging

        Returns:
            Staged row count, drop counts and the sync result when run

        Raises:
            ValidationError: If the file is malformed (store untouched)
            StoreError: If staging or a sync phase fails
        """
        try:
            schema = self._schema_for(path, domain)
        except ValidationError:
            self._record_upload(domain or "unknown", "failure")
            raise

        with CorrelationContext(domain=schema.name, operation="upload"):
            try:
                raw_rows, report = self._parse(path, schema)
                staged = self.store.replace_staging(schema, [r.to_row(schema) for r in report.records])
            except RecordSyncError:
                self._record_upload(schema.name, "failure")
                raise

            self._record_upload(schema.name, "success", len(raw_rows), report.drop_counts())
            self._set_staged(schema.name, staged)

            summary = {
                "domain": schema.name,
                "file": Path(path).name,
                "rows_read": len(raw_rows),
                "staged": staged,
                "dropped": report.drop_counts(),
            }

            if sync:
                summary["sync"] = self.reconciler.sync(schema.name).to_dict()

        logger.info(f"Upload of {Path(path).name} complete: {staged} {schema.name} rows staged")
        return summary

    def stage(self, domain: str, payload: Sequence[Dict[str, Any]]) -> int:
        """
        Replace staging from an already-normalized payload.

        Args:
            domain: Domain name
            payload: Array of row objects keyed by column name or extract label

        Returns:
            Number of rows staged

        Raises:
            ValidationError: If the payload is malformed (store untouched)
            StoreError: If the staging transaction fails
        """
        schema = get_schema(domain)

        with CorrelationContext(domain=domain, operation="stage"):
            records = records_from_payload(payload, schema)
            staged = self.store.replace_staging(schema, [r.to_row(schema) for r in records])

        self._set_staged(domain, staged)
        return staged

    def sync(self, domain: str, dry_run: bool = False) -> ReconciliationResult:
        """Reconcile master against the current staging snapshot."""
        with CorrelationContext(domain=domain, operation="sync"):
            return self.reconciler.sync(domain, dry_run=dry_run)

    def annotate(
        self,
        domain: str,
        key: str,
        note: Optional[str],
        action_date: Union[date, str, None]
    ) -> None:
        """Set note and action date on one master record."""
        with CorrelationContext(domain=domain, operation="annotate"):
            self.annotator.annotate(domain, key, note, action_date)

    def export(self, domain: str, directory: Optional[Union[str, Path]] = None) -> Union[str, Path]:
        """
        Export master for a domain.

        Args:
            domain: Domain name
            directory: When given, write a dated file there and return its path

        Returns:
            CSV text, or the written file path
        """
        with CorrelationContext(domain=domain, operation="export"):
            if directory is None:
                result = self.exporter.export(domain)
            else:
                result = self.exporter.write_export(domain, directory)

        if self.metrics is not None:
            self.metrics.ingest.record_export(domain)
        return result

    def report(self, domain: str) -> Dict[str, Any]:
        """
        Summarize a domain's master and staging state.

        Returns:
            Master and staging counts, records nobody has followed up on yet
            (empty note), and what a sync would delete and insert now
        """
        schema = get_schema(domain)

        with CorrelationContext(domain=domain, operation="report"):
            master_rows = self.store.fetch_master(schema)
            staging_keys = self.store.staging_keys(schema)
            master_keys = {schema.identity_key(row) for row in master_rows}
            pending = self.differ.get_diff_summary(staging_keys, master_keys)

        not_contacted = sum(1 for row in master_rows if not (row.get(NOTE_COLUMN) or "").strip())

        return {
            "domain": domain,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "master_records": len(master_rows),
            "staged_records": len(staging_keys),
            "not_yet_contacted": not_contacted,
            "pending": {
                "to_delete": pending["to_delete"],
                "to_insert": pending["to_insert"],
                "surviving": pending["surviving"],
            },
        }

    def _schema_for(self, path: Union[str, Path], domain: Optional[str]) -> DomainSchema:
        if domain:
            return check_filename(str(path), domain)
        return resolve_domain(str(path))

    def _parse(self, path: Union[str, Path], schema: DomainSchema):
        table = read_upload(path)
        report: NormalizationReport = Normalizer(schema).normalize_with_report(table.rows, table.labels)
        return table.rows, report

    def _display_row(self, schema: DomainSchema, row: Dict[str, Any]) -> Dict[str, str]:
        return {column: format_cell(row.get(column)) for column in schema.domain_columns}

    def _record_upload(
        self,
        domain: str,
        status: str,
        rows_read: int = 0,
        dropped: Optional[Dict[str, int]] = None
    ) -> None:
        if self.metrics is not None:
            self.metrics.ingest.record_upload(domain, status, rows_read, dropped)

    def _set_staged(self, domain: str, count: int) -> None:
        if self.metrics is not None:
            self.metrics.ingest.set_staged_rows(domain, count)
