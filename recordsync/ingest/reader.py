"""
Upload Reader for Record Sync

Turns an uploaded extract (spreadsheet or delimited text) into raw rows keyed
by column label. Reading is pure: nothing here touches a store, so a malformed
file fails before any mutation.
"""

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from recordsync.domains import DOMAINS, DomainSchema, get_schema
from recordsync.exceptions import ValidationError

logger = logging.getLogger(__name__)

SPREADSHEET_SUFFIXES = (".xlsx", ".xlsm")
DELIMITED_SUFFIXES = (".csv", ".txt")

UploadedRow = Dict[str, Any]


@dataclass
class UploadedTable:
    """
    A parsed extract.

    Attributes:
        labels: Non-blank header labels in column order
        rows: Data rows keyed by header label
    """

    labels: List[str] = field(default_factory=list)
    rows: List[UploadedRow] = field(default_factory=list)


def resolve_domain(filename: str) -> DomainSchema:
    """
    Pick the domain an extract belongs to from its filename prefix.

    Args:
        filename: Uploaded file name (directories are ignored)

    Returns:
        Matching domain schema

    Raises:
        ValidationError: If no domain claims the filename
    """
    name = Path(filename).name.lower()

    for schema in DOMAINS.values():
        if name.startswith(schema.upload_prefix):
            return schema

    prefixes = [f'"{s.upload_prefix}"' for s in DOMAINS.values()]
    raise ValidationError(
        f"Cannot tell which domain {Path(filename).name} belongs to. "
        f"File names must start with one of {', '.join(prefixes)}"
    )


def check_filename(filename: str, domain: str) -> DomainSchema:
    """
    Verify that an extract's filename matches the requested domain.

    Raises:
        ValidationError: If the prefix belongs to another domain or none
    """
    schema = get_schema(domain)
    name = Path(filename).name

    if not name.lower().startswith(schema.upload_prefix):
        raise ValidationError(
            f"Invalid file for {domain}: {name}. "
            f'Please upload files with names starting with "{schema.upload_prefix}"'
        )

    return schema


def read_upload(path: Union[str, Path]) -> UploadedTable:
    """
    Read an uploaded extract into its header labels and raw rows.

    Args:
        path: Path to a .xlsx/.xlsm workbook or a .csv/.txt file

    Returns:
        UploadedTable with rows keyed by header label, fully empty rows removed

    Raises:
        ValidationError: If the file type is unsupported, or the file has no
            worksheet or no header row
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in SPREADSHEET_SUFFIXES:
        table = read_workbook(path)
    elif suffix in DELIMITED_SUFFIXES:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            table = read_delimited(f)
    else:
        raise ValidationError(
            f"Unsupported file type '{suffix or path.name}'. "
            f"Expected one of {SPREADSHEET_SUFFIXES + DELIMITED_SUFFIXES}"
        )

    logger.info(f"Read {len(table.rows)} rows from {path.name}")
    return table


def read_workbook(path: Union[str, Path]) -> UploadedTable:
    """Read the first worksheet of a workbook."""
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ValidationError(f"Could not open workbook {Path(path).name}: {e}") from e

    try:
        if not workbook.sheetnames:
            raise ValidationError("No worksheet found in the uploaded file")

        worksheet = workbook[workbook.sheetnames[0]]
        return rows_from_table(worksheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def read_delimited(stream: io.TextIOBase) -> UploadedTable:
    """Read delimited text, sniffing the delimiter when it is not a comma."""
    sample = stream.read(4096)
    stream.seek(0)

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel

    return rows_from_table(csv.reader(stream, dialect))


def rows_from_table(table) -> UploadedTable:
    """
    Convert a header-first table of cell tuples into labeled rows.

    The first row with any non-empty cell is the header. Blank header cells
    get no key; blank data rows are skipped. The header labels are kept even
    when no data row follows.

    Raises:
        ValidationError: If no header row is present
    """
    header: Optional[List[Optional[str]]] = None
    rows: List[UploadedRow] = []

    for cells in table:
        if _is_blank(cells):
            continue

        if header is None:
            header = [_label(cell) for cell in cells]
            continue

        row = {}
        for label, value in zip(header, cells):
            if label is not None:
                row[label] = value
        rows.append(row)

    if header is None or not any(header):
        raise ValidationError("No header row found in the uploaded file")

    return UploadedTable(labels=[label for label in header if label is not None], rows=rows)


def _label(cell: Any) -> Optional[str]:
    if cell is None:
        return None
    label = str(cell).strip()
    return label or None


def _is_blank(cells: Sequence[Any]) -> bool:
    return all(cell is None or str(cell).strip() == "" for cell in cells)
