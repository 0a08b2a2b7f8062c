"""
Domain Schemas for Record Sync

Describes the record domains (invoices, quotes) handled by the pipeline:
which extract columns map to which store columns, how each value is typed,
how the identity key is found, and how master rows are ordered for export.

The reconciliation engine is generic; everything domain-specific lives here.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from recordsync.exceptions import ValidationError

logger = logging.getLogger(__name__)

NOTE_COLUMN = "note"
ACTION_DATE_COLUMN = "action_date"


class FieldType(Enum):
    """Value types a domain field can carry."""
    TEXT = "text"
    DATE = "date"
    CURRENCY = "currency"


@dataclass(frozen=True)
class Field:
    """
    One domain column.

    Attributes:
        column: Store column name
        labels: Extract column labels, in order of preference
        type: Value type
        markup: Whether the extract may wrap the value in rich-text markup
    """

    column: str
    labels: Tuple[str, ...]
    type: FieldType = FieldType.TEXT
    markup: bool = False

    @property
    def label(self) -> str:
        return self.labels[0]


@dataclass(frozen=True)
class DomainSchema:
    """
    Column layout and identity rules for one record domain.

    Master and staging tables share this exact column shape: the identity
    column, the domain fields, then the annotation columns.
    """

    name: str
    master_table: str
    staging_table: str
    key_column: str
    key_labels: Tuple[str, ...]
    fields: Tuple[Field, ...]
    display_column: str
    upload_prefix: str
    sort_column: str
    sort_descending: bool = True
    ordinal_label: str = "#"
    key_markup: bool = False
    aggregate_labels: Tuple[str, ...] = ("totals", "total", "grand total")
    annotation_fields: Tuple[Field, ...] = field(default=(
        Field(NOTE_COLUMN, ("Note",)),
        Field(ACTION_DATE_COLUMN, ("Action Date",), FieldType.DATE),
    ))

    @property
    def key_field(self) -> Field:
        return Field(self.key_column, self.key_labels, markup=self.key_markup)

    @property
    def domain_columns(self) -> List[str]:
        """Identity column followed by every domain field column."""
        return [self.key_column] + [f.column for f in self.fields]

    @property
    def annotation_columns(self) -> List[str]:
        return [f.column for f in self.annotation_fields]

    @property
    def columns(self) -> List[str]:
        """Full column shape shared by master and staging tables."""
        return self.domain_columns + self.annotation_columns

    def all_fields(self) -> List[Field]:
        return [self.key_field] + list(self.fields) + list(self.annotation_fields)

    def get_field(self, column: str) -> Optional[Field]:
        for candidate in self.all_fields():
            if candidate.column == column:
                return candidate
        return None

    def identity_key(self, row: Dict[str, Any]) -> str:
        """
        Extract the identity key from a staged or master row.

        Raises:
            KeyError: If the identity column is missing from the row
            ValueError: If the identity column is NULL
        """
        if self.key_column not in row:
            raise KeyError(
                f"Key field '{self.key_column}' not found in row. "
                f"Available fields: {list(row.keys())}"
            )

        value = row[self.key_column]
        if value is None:
            raise ValueError(
                f"Key field '{self.key_column}' has NULL value in row. "
                f"Keys cannot be NULL. Row: {row}"
            )

        return str(value)

    def project(self, staged_row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Project a staged row onto a new master row.

        Domain fields are copied as-is (missing ones become None); annotation
        fields are always initialized empty, whatever the staged row holds.
        """
        master_row = {column: staged_row.get(column) for column in self.domain_columns}
        master_row.update(self.empty_annotations())
        return master_row

    def empty_annotations(self) -> Dict[str, Any]:
        return {NOTE_COLUMN: "", ACTION_DATE_COLUMN: None}

    def sort_rows(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Order master rows for export.

        Rows without a sort value go last; ties fall back to ascending key.
        """
        ordered = sorted(rows, key=lambda r: str(r.get(self.key_column) or ""))

        if self.sort_column == self.key_column:
            return sorted(
                ordered,
                key=lambda r: str(r.get(self.key_column) or ""),
                reverse=self.sort_descending
            )

        present = [r for r in ordered if r.get(self.sort_column) is not None]
        missing = [r for r in ordered if r.get(self.sort_column) is None]
        present.sort(key=lambda r: r[self.sort_column], reverse=self.sort_descending)

        return present + missing


def _text(column: str, label: str, markup: bool = False) -> Field:
    return Field(column, (label,), FieldType.TEXT, markup)


INVOICES = DomainSchema(
    name="invoices",
    master_table="invoices",
    staging_table="invoices_staging",
    key_column="invoice",
    key_labels=("Invoice",),
    fields=(
        Field("due_date", ("Due Date",), FieldType.DATE),
        _text("customer_name", "Customer Name", markup=True),
        _text("service_location", "Service Location"),
        _text("rows", "Rows"),
        _text("customer_email", "Customer Email"),
        _text("po_number", "PO Number"),
        _text("phone_1", "Phone 1"),
        _text("phone_2", "Phone 2"),
        Field("total_amount", ("Total Amount", "Amount"), FieldType.CURRENCY),
        _text("customer_address", "Customer Address"),
        _text("service_location_contact", "Service Location Contact"),
        _text("service_location_phone", "Service Location Phone"),
        _text("parent_customer_name", "Parent Customer Name"),
        _text("parent_customer_phone", "Parent Customer Phone"),
        _text("parent_customer_address", "Parent Customer Address"),
    ),
    display_column="customer_name",
    upload_prefix="past",
    sort_column="due_date",
)

QUOTES = DomainSchema(
    name="quotes",
    master_table="quotes",
    staging_table="quotes_staging",
    key_column="quote",
    key_labels=("Quote", "Invoice"),
    key_markup=True,
    fields=(
        _text("name", "Name", markup=True),
        Field("total_amount", ("Total Amount", "Amount"), FieldType.CURRENCY),
    ),
    display_column="name",
    upload_prefix="quote",
    sort_column="quote",
)

DOMAINS: Dict[str, DomainSchema] = {
    INVOICES.name: INVOICES,
    QUOTES.name: QUOTES,
}


def get_schema(domain: str) -> DomainSchema:
    """
    Look up a domain schema by name.

    Raises:
        ValidationError: If the domain is unknown
    """
    try:
        return DOMAINS[domain]
    except KeyError:
        raise ValidationError(
            f"Unknown domain: {domain}. Must be one of {sorted(DOMAINS)}"
        ) from None
