"""Typed spreadsheet cell values.

Spreadsheet libraries hand back strings, numbers, datetimes or nothing at all
for a cell. Readers wrap every raw value in one of the small types below so
the field coercions in `splitme.spreadsheet` can dispatch on type instead of
guessing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class Text:
    """A text cell (already trimmed)."""

    value: str

    def as_text(self) -> str:
        return self.value


@dataclass(frozen=True)
class Number:
    """A numeric cell."""

    value: float

    def as_text(self) -> str:
        if self.value.is_integer():
            return str(int(self.value))
        return repr(self.value)


@dataclass(frozen=True)
class DateValue:
    """A cell the spreadsheet library already decoded as a date."""

    value: date | datetime

    def as_text(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class Empty:
    """A missing or blank cell."""

    def as_text(self) -> str:
        return ""


CellValue = Text | Number | DateValue | Empty

EMPTY = Empty()


def to_cell(raw: object) -> CellValue:
    """Wrap a raw value from a reader in the matching cell type."""
    if raw is None:
        return EMPTY
    if isinstance(raw, bool):
        return Text(str(raw).upper())
    if isinstance(raw, (int, float)):
        return Number(float(raw))
    if isinstance(raw, (date, datetime)):
        return DateValue(raw)
    text = str(raw).strip()
    return Text(text) if text else EMPTY


def is_blank(cell: CellValue) -> bool:
    """True when the cell holds no text."""
    return not cell.as_text()
