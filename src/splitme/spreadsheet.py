"""Normalize uploaded CSV / .xlsx files into reviewable expense rows.

The column layout of an upload is unknown. Headers are matched against a small
vocabulary to find the amount, date, description, merchant and currency
columns, then every data row is coerced field by field. Problems never stop
the import: they are attached to the row as warning tags for a human to
review.
"""

import logging
import re
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .cells import EMPTY, CellValue, DateValue, Empty, Number
from .exceptions import UnsupportedFileTypeError
from .models import ImportResult, ParsedRow
from .readers import read_csv_rows, read_xlsx_rows

logger = logging.getLogger(__name__)

MAX_ROWS = 500

# Row warning tags
INVALID_AMOUNT = "invalid-amount"
NEG_ADJUSTED = "neg-adjusted"
DATE_FALLBACK = "date-fallback"
INVALID_CURRENCY = "invalid-currency"
GUESSED_DESCRIPTION = "guessed-description"
MISSING_DESCRIPTION = "missing-description"
TRUNCATED_ROWS = "truncated-rows"

# Checked in this order; a header binds at most one field.
COLUMN_PATTERNS: dict[str, re.Pattern[str]] = {
    "amount": re.compile(r"^(amount|amt|total|value)$"),
    "date": re.compile(r"^(date|transactiondate|dt)$"),
    "description": re.compile(
        r"^(description|desc|note|notes|memo|comment|comments)$"
    ),
    "merchant": re.compile(r"^(merchant|vendor|store|place|shop|where)$"),
    "currency": re.compile(r"^(currency|curr|ccy)$"),
}

# Logical field name -> zero-based column index. Unbound fields are absent.
ColumnMap = dict[str, int]

# Excel's 1900 date system, shifted two days to absorb its phantom 1900-02-29.
EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_SERIAL_MAX = 60000

_CENT = Decimal("0.01")
_SEPARATORS_ONLY = re.compile(r"^[0-9.,]+$")
_AMOUNT_NOISE = re.compile(r"[$€£,\s]")
_PLAIN_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)
_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_TEXT_DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%a %b %d %Y",
    "%a, %d %b %Y %H:%M:%S GMT",
)

# A coerced field value together with the warnings it produced.
Warnings = tuple[str, ...]


# ============================================================================
# Column detection
# ============================================================================


def normalize_header(header: str) -> str:
    """Lower-case a header and drop everything but ASCII letters and digits."""
    return re.sub(r"[^a-z0-9]+", "", header.strip().lower())


def detect_columns(headers: list[str]) -> ColumnMap:
    """
    Bind logical fields to columns by header name.

    The first matching column wins for each field; later duplicates are
    ignored.

    Args:
        headers: Raw header cells in file order

    Returns:
        Column map for the fields that were found
    """
    columns: ColumnMap = {}
    for idx, header in enumerate(headers):
        normalized = normalize_header(header)
        for field, pattern in COLUMN_PATTERNS.items():
            if field not in columns and pattern.match(normalized):
                columns[field] = idx
                break
    return columns


def _pick(cells: list[CellValue], idx: int | None) -> str:
    if idx is None or idx >= len(cells):
        return ""
    return cells[idx].as_text().strip()


def _cell(cells: list[CellValue], idx: int | None) -> CellValue:
    if idx is None or idx >= len(cells):
        return EMPTY
    return cells[idx]


# ============================================================================
# Field coercion
# ============================================================================


def parse_amount(cell: CellValue) -> tuple[Decimal | None, Warnings]:
    """
    Coerce an amount cell to a positive 2-decimal amount.

    A lone comma with no dot is read as a decimal comma ("12,50"). Currency
    symbols, thousands separators and whitespace are ignored. Zero and
    non-numeric values are rejected; negative values are made positive.
    """
    text = cell.as_text().strip()
    if not text:
        return None, ()

    if "." not in text and text.count(",") == 1 and _SEPARATORS_ONLY.match(text):
        text = text.replace(",", ".")
    text = _AMOUNT_NOISE.sub("", text)
    if not _PLAIN_NUMBER.match(text):
        return None, (INVALID_AMOUNT,)

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None, (INVALID_AMOUNT,)
    if not value.is_finite() or value == 0:
        return None, (INVALID_AMOUNT,)

    warnings: Warnings = ()
    if value < 0:
        warnings = (NEG_ADJUSTED,)
        value = -value

    try:
        return value.quantize(_CENT, rounding=ROUND_HALF_UP), warnings
    except InvalidOperation:
        # too many digits to represent in cents
        return None, (INVALID_AMOUNT,)


def _parse_text_date(text: str) -> date | None:
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        pass
    else:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(UTC)
        return parsed.date()

    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_slash_date(text: str) -> date | None:
    match = _SLASH_DATE.match(text)
    if not match:
        return None
    first, second, year = (int(part) for part in match.groups())
    # A first number above 12 can only be a day.
    day, month = (first, second) if first > 12 else (second, first)
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(cell: CellValue, today: date) -> tuple[str, Warnings]:
    """
    Coerce a date cell to an ISO yyyy-mm-dd string.

    Numbers in (0, 60000) are Excel serial dates, other numbers are Unix
    timestamps in milliseconds. Text is parsed as an ISO-like date first and
    then as D/M/YYYY or M/D/YYYY. Empty cells default to `today` silently;
    unparseable ones default to `today` with a warning.
    """
    if isinstance(cell, Empty):
        return today.isoformat(), ()

    if isinstance(cell, DateValue):
        value = cell.value
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat(), ()

    if isinstance(cell, Number):
        try:
            if 0 < cell.value < EXCEL_SERIAL_MAX:
                parsed = (EXCEL_EPOCH + timedelta(days=cell.value)).date()
            else:
                parsed = datetime.fromtimestamp(cell.value / 1000, tz=UTC).date()
        except (OverflowError, OSError, ValueError):
            return today.isoformat(), (DATE_FALLBACK,)
        return parsed.isoformat(), ()

    text = cell.as_text().strip()
    if not text:
        return today.isoformat(), ()

    parsed = _parse_text_date(text) or _parse_slash_date(text)
    if parsed is None:
        return today.isoformat(), (DATE_FALLBACK,)
    return parsed.isoformat(), ()


def parse_currency(cell: CellValue) -> tuple[str | None, Warnings]:
    """Accept a three-letter currency code, upper-cased."""
    text = cell.as_text().strip().upper()
    if not text:
        return None, ()
    if _CURRENCY_CODE.match(text):
        return text, ()
    return None, (INVALID_CURRENCY,)


def resolve_description(
    cells: list[CellValue], columns: ColumnMap
) -> tuple[str, str | None, Warnings]:
    """
    Find a description for a row.

    Falls back from the description column to the merchant column, and then
    to the first non-empty cell in any column not bound to amount, date,
    description or merchant.

    Returns:
        Tuple of (description, guessed text or None, warnings)
    """
    description = _pick(cells, columns.get("description"))
    if description:
        return description, None, ()

    merchant = _pick(cells, columns.get("merchant"))
    if merchant:
        return merchant, None, ()

    bound = {
        columns.get(field) for field in ("amount", "date", "description", "merchant")
    }
    for idx in range(len(cells)):
        if idx in bound:
            continue
        value = _pick(cells, idx)
        if value:
            return value, value, (GUESSED_DESCRIPTION,)

    return "", None, (MISSING_DESCRIPTION,)


def build_row(
    index: int, cells: list[CellValue], columns: ColumnMap, today: date
) -> ParsedRow:
    """Coerce one data row using a column map."""
    amount, amount_warnings = parse_amount(_cell(cells, columns.get("amount")))
    iso_date, date_warnings = parse_date(_cell(cells, columns.get("date")), today)
    description, guessed, description_warnings = resolve_description(cells, columns)

    currency: str | None = None
    currency_warnings: Warnings = ()
    if "currency" in columns:
        currency, currency_warnings = parse_currency(
            _cell(cells, columns["currency"])
        )

    merchant = _pick(cells, columns.get("merchant")) or guessed or None

    return ParsedRow(
        index=index,
        amount=amount,
        date=iso_date,
        description=description,
        merchant=merchant,
        currency=currency,
        warnings=[
            *amount_warnings,
            *date_warnings,
            *description_warnings,
            *currency_warnings,
        ],
    )


# ============================================================================
# Entry points
# ============================================================================


def normalize_records(
    records: Iterable[list[CellValue]],
    today: date | None = None,
    max_rows: int = MAX_ROWS,
) -> list[ParsedRow]:
    """
    Turn tokenized rows (header first) into parsed rows.

    Stops after `max_rows` data rows; if more data follows, the last kept row
    is tagged `truncated-rows`.
    """
    today = today or datetime.now(UTC).date()
    iterator = iter(records)

    header = next(iterator, None)
    if header is None:
        return []

    columns = detect_columns([cell.as_text() for cell in header])
    logger.debug(f"Detected columns: {columns}")

    rows: list[ParsedRow] = []
    for cells in iterator:
        if len(rows) >= max_rows:
            last = rows[-1]
            rows[-1] = last.model_copy(
                update={"warnings": [*last.warnings, TRUNCATED_ROWS]}
            )
            logger.debug(f"Truncated upload at {max_rows} rows")
            break
        rows.append(build_row(len(rows), cells, columns, today))

    return rows


def parse_spreadsheet(
    content: bytes,
    file_name: str,
    *,
    today: date | None = None,
    max_rows: int = MAX_ROWS,
) -> ImportResult:
    """
    Parse an uploaded spreadsheet into reviewable rows.

    Args:
        content: Raw file bytes
        file_name: Original file name; its extension picks the parser
        today: Date used when a row has no usable date (defaults to today, UTC)
        max_rows: Maximum number of data rows to keep

    Returns:
        Parsed rows and a validity summary

    Raises:
        UnsupportedFileTypeError: If the file is not .csv or .xlsx
    """
    lower = file_name.lower()
    if lower.endswith(".csv"):
        records = read_csv_rows(content)
    elif lower.endswith(".xlsx"):
        records = read_xlsx_rows(content)
    else:
        raise UnsupportedFileTypeError(file_name)

    rows = normalize_records(records, today=today, max_rows=max_rows)
    result = ImportResult.from_rows(rows)

    logger.debug(
        f"Parsed {file_name}: {result.summary.total_rows} rows, "
        f"{result.summary.valid_rows} valid"
    )
    return result
