"""
Record Normalizer for Record Sync

Parses raw uploaded rows into typed, keyed records for one domain:
- Identity key extraction (identity column, falling back to the ordinal column)
- Date, currency and plain-text normalization
- Removal of export artifacts (totals rows, rows without a display name)
- First-wins handling of keys repeated within one extract

Normalization is side-effect free and always runs before any store mutation.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from recordsync.domains import DomainSchema, Field, FieldType
from recordsync.exceptions import ValidationError
from recordsync.ingest.converters import clean_text, parse_currency, parse_date, strip_markup

logger = logging.getLogger(__name__)

DROP_AGGREGATE = "aggregate_row"
DROP_EMPTY_DISPLAY = "empty_display"
DROP_MISSING_IDENTITY = "missing_identity"
DROP_DUPLICATE_IDENTITY = "duplicate_identity"


@dataclass(frozen=True)
class NormalizedRecord:
    """
    A typed extract record.

    Attributes:
        identity_key: Exact key the record is reconciled on
        fields: Domain field values keyed by store column
    """

    identity_key: str
    fields: Dict[str, Any]

    def to_row(self, schema: DomainSchema) -> Dict[str, Any]:
        """Staging row for this record; columns it does not carry are None."""
        row = {column: self.fields.get(column) for column in schema.domain_columns}
        row[schema.key_column] = self.identity_key
        return row


@dataclass
class DroppedRow:
    """A raw row excluded from the normalized output."""

    index: int
    reason: str
    detail: str = ""


@dataclass
class NormalizationReport:
    """Records produced by one normalization pass plus the rows it dropped."""

    records: List[NormalizedRecord] = field(default_factory=list)
    dropped: List[DroppedRow] = field(default_factory=list)

    def drop_counts(self) -> Dict[str, int]:
        return dict(Counter(row.reason for row in self.dropped))


class Normalizer:
    """
    Normalizes raw extract rows for one domain.

    Example:
        >>> report = Normalizer(QUOTES).normalize_with_report(rows)
        >>> report.records[0].fields["name"]
        'Acme Co'
    """

    def __init__(self, schema: DomainSchema):
        self.schema = schema
        logger.debug(f"Initialized Normalizer for {schema.name}")

    def normalize(self, raw_rows: Sequence[Dict[str, Any]]) -> List[NormalizedRecord]:
        """Normalize rows and return only the surviving records."""
        return self.normalize_with_report(raw_rows).records

    def normalize_with_report(
        self,
        raw_rows: Sequence[Dict[str, Any]],
        labels: Optional[Sequence[str]] = None
    ) -> NormalizationReport:
        """
        Normalize rows, keeping track of every row that was dropped.

        Args:
            raw_rows: Rows keyed by extract column label
            labels: Header labels of the extract; the identity column is
                checked against them even when there are no data rows

        Returns:
            NormalizationReport with records in extract order

        Raises:
            ValidationError: If the rows are not a table, or no identity
                column (nor the ordinal fallback) exists in the extract
        """
        if raw_rows is None:
            raise ValidationError("No table found in the uploaded data")

        report = NormalizationReport()
        if not raw_rows:
            if labels is not None:
                self.resolve_key_labels(labels)
            logger.warning(f"No data rows in {self.schema.name} extract")
            return report

        labels = list(dict.fromkeys(list(labels or []) + self._collect_labels(raw_rows)))
        key_labels = self.resolve_key_labels(labels)

        seen = set()

        for index, raw in enumerate(raw_rows):
            values = {fld.column: self._convert(fld, raw) for fld in self.schema.fields}

            display = values.get(self.schema.display_column, "")
            if display.lower() in self.schema.aggregate_labels:
                report.dropped.append(DroppedRow(index, DROP_AGGREGATE, display))
                continue

            if not display:
                report.dropped.append(DroppedRow(index, DROP_EMPTY_DISPLAY))
                continue

            key = self._identity(_first_present(raw, key_labels))
            if not key:
                logger.warning(f"Row {index} of {self.schema.name} extract has no identity, dropping it")
                report.dropped.append(DroppedRow(index, DROP_MISSING_IDENTITY))
                continue

            if key in seen:
                logger.warning(f"Duplicate {self.schema.name} key '{key}' at row {index}, keeping first occurrence")
                report.dropped.append(DroppedRow(index, DROP_DUPLICATE_IDENTITY, key))
                continue

            seen.add(key)
            report.records.append(NormalizedRecord(identity_key=key, fields=values))

        logger.info(
            f"Normalized {len(report.records)} {self.schema.name} records, "
            f"dropped {len(report.dropped)} rows {report.drop_counts()}"
        )
        return report

    def resolve_key_labels(self, labels: Sequence[str]) -> List[str]:
        """
        Choose the extract columns holding the identity key, in order of use.

        Identity columns come first; the ordinal column is the fallback for
        rows whose identity cell is empty.

        Raises:
            ValidationError: If neither an identity column nor the ordinal
                column is present
        """
        candidates = self.schema.key_labels + (self.schema.ordinal_label,)
        present = [label for label in candidates if label in labels]

        if not present:
            raise ValidationError(
                f"No identity column in {self.schema.name} extract. Expected one of "
                f"{list(candidates)}, found {sorted(labels)}"
            )

        if present == [self.schema.ordinal_label]:
            logger.info(
                f"No {'/'.join(self.schema.key_labels)} column in {self.schema.name} extract, "
                f"falling back to '{self.schema.ordinal_label}'"
            )

        return present

    def _collect_labels(self, raw_rows: Sequence[Dict[str, Any]]) -> List[str]:
        labels = {}
        for raw in raw_rows:
            if not isinstance(raw, dict):
                raise ValidationError(f"Expected rows keyed by column label, got {type(raw).__name__}")
            labels.update(dict.fromkeys(raw.keys()))
        return list(labels)

    def _identity(self, value: Any) -> str:
        if self.schema.key_markup:
            return strip_markup(clean_text(value))
        return clean_text(value)

    def _convert(self, fld: Field, raw: Dict[str, Any]) -> Any:
        value = _first_present(raw, fld.labels)
        return convert_value(fld, value)


def convert_value(fld: Field, value: Any) -> Any:
    """Convert one raw value according to its field definition."""
    if fld.type is FieldType.DATE:
        return parse_date(value)

    if fld.type is FieldType.CURRENCY:
        return parse_currency(value)

    if fld.markup:
        return strip_markup(value)

    return clean_text(value)


def normalize(raw_rows: Sequence[Dict[str, Any]], schema: DomainSchema) -> List[NormalizedRecord]:
    """Normalize raw extract rows for a domain."""
    return Normalizer(schema).normalize(raw_rows)


def records_from_payload(payload: Sequence[Dict[str, Any]], schema: DomainSchema) -> List[NormalizedRecord]:
    """
    Build records from an already-normalized JSON-like array.

    Keys may be store column names or extract labels. Columns a row does not
    carry stay absent (stored as NULL); annotation-like keys are ignored.

    Raises:
        ValidationError: If the payload is not a list of objects, or a row
            has no identity value
    """
    if not isinstance(payload, (list, tuple)):
        raise ValidationError("Staging payload must be an array of row objects")

    records = []
    seen = set()

    for index, row in enumerate(payload):
        if not isinstance(row, dict):
            raise ValidationError(f"Staging payload row {index} is not an object")

        key_value = row.get(schema.key_column)
        if key_value is None:
            key_value = _first_present(row, schema.key_labels + (schema.ordinal_label,))

        key = clean_text(key_value)
        if not key:
            raise ValidationError(f"Staging payload row {index} has no {schema.key_column}")

        if key in seen:
            logger.warning(f"Duplicate {schema.name} key '{key}' in staging payload, keeping first occurrence")
            continue
        seen.add(key)

        fields = {}
        for fld in schema.fields:
            if fld.column in row:
                value = row[fld.column]
            elif any(label in row for label in fld.labels):
                value = _first_present(row, fld.labels)
            else:
                continue
            fields[fld.column] = _coerce_payload_value(fld, value)

        records.append(NormalizedRecord(identity_key=key, fields=fields))

    logger.info(f"Accepted {len(records)} {schema.name} rows from staging payload")
    return records


def _coerce_payload_value(fld: Field, value: Any) -> Any:
    if value is None:
        return None
    if fld.type is FieldType.DATE and not isinstance(value, date):
        return parse_date(value)
    if fld.type is FieldType.CURRENCY and not isinstance(value, Decimal):
        return parse_currency(value)
    if fld.type is FieldType.TEXT:
        return clean_text(value)
    return value


def _first_present(row: Dict[str, Any], labels: Sequence[str]) -> Optional[Any]:
    """Value of the first label present with a non-empty value."""
    fallback = None
    for label in labels:
        if label in row:
            value = row[label]
            if value is not None and str(value).strip() != "":
                return value
            fallback = value
    return fallback
