"""
Value converters for extract cells.

Extract data is sparse and loosely formatted, so dates that cannot be read
become None and amounts that cannot be read become zero instead of failing.
"""

import html
import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from html.parser import HTMLParser
from typing import Any, Optional

from openpyxl.utils.datetime import from_excel

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%m-%d-%y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)

# Excel serial day numbers for 1900-01-01 .. 2199-12-31
_EXCEL_SERIAL_RANGE = (1, 109574)

_TIME_SUFFIX = re.compile(r"[ T]\d{1,2}:\d{2}(:\d{2}(\.\d+)?)?\s*([AaPp][Mm])?(Z|[+-]\d{2}:?\d{2})?$")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_WHITESPACE = re.compile(r"\s+")


class _TextExtractor(HTMLParser):
    """Collects the text content of a markup fragment."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts = []

    def handle_data(self, data):
        self.parts.append(data)

    def text(self) -> str:
        return "".join(self.parts)


def strip_markup(value: Any) -> str:
    """
    Reduce a rich-text cell to plain text.

    Tags are dropped, entities are unescaped and runs of whitespace collapse
    to a single space.

    Args:
        value: Raw cell value

    Returns:
        Plain text ("" for None)
    """
    if value is None:
        return ""

    text = str(value)
    if "<" in text:
        extractor = _TextExtractor()
        extractor.feed(text)
        extractor.close()
        text = extractor.text()
    else:
        text = html.unescape(text)

    return _WHITESPACE.sub(" ", text).strip()


def clean_text(value: Any) -> str:
    """Trimmed string form of a cell; None becomes ""."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a cell into a calendar date.

    Accepts date/datetime objects, Excel serial day numbers and the
    textual forms in DATE_FORMATS, optionally followed by a time of day.

    Returns:
        The date, or None when the value is empty or cannot be read
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        low, high = _EXCEL_SERIAL_RANGE
        if low <= value <= high:
            converted = from_excel(value)
            return converted.date() if isinstance(converted, datetime) else converted
        return None

    text = _WHITESPACE.sub(" ", str(value)).strip()
    if not text:
        return None

    text = _TIME_SUFFIX.sub("", text).strip()

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    logger.debug(f"Unparseable date value: {value!r}")
    return None


def parse_currency(value: Any) -> Decimal:
    """
    Parse a cell into a fixed-point amount with two decimal places.

    Currency symbols, thousands separators and other formatting are
    stripped; an amount in parentheses is negative.

    Returns:
        The amount, or Decimal("0.00") when the value cannot be read
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        text = str(value).strip()
        negative = text.startswith("(") and text.endswith(")")
        digits = _NON_NUMERIC.sub("", text)

        try:
            amount = Decimal(digits)
        except InvalidOperation:
            if text:
                logger.debug(f"Unparseable currency value: {value!r}")
            return ZERO

        if negative:
            amount = -abs(amount)

    if not amount.is_finite():
        return ZERO

    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.debug(f"Currency value out of range: {value!r}")
        return ZERO
