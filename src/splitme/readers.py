"""Tabular readers that turn uploaded bytes into rows of typed cells.

Readers only tokenize. They yield non-blank rows (header first) and never
interpret values; a file that cannot be read yields nothing.
"""

import csv
import io
import logging
import zipfile
from collections.abc import Iterator

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .cells import EMPTY, CellValue, Text, is_blank, to_cell

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# SyntaxError covers xml.etree's ParseError and lxml's XMLSyntaxError
WORKBOOK_ERRORS = (
    InvalidFileException,
    zipfile.BadZipFile,
    KeyError,
    ValueError,
    OSError,
    SyntaxError,
)


def decode_csv(content: bytes) -> str | None:
    """
    Decode CSV bytes as UTF-8, dropping a leading byte-order mark.

    Returns:
        The decoded text, or None if the bytes are not valid UTF-8
    """
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.debug(f"CSV upload is not valid UTF-8: {e}")
        return None
    return text[1:] if text.startswith(BOM) else text


def read_csv_rows(content: bytes) -> Iterator[list[CellValue]]:
    """
    Yield the non-blank rows of a CSV upload.

    Handles RFC 4180 quoting (embedded commas, newlines and doubled quotes)
    and any mix of \\r\\n, \\n and \\r line endings. Cells are trimmed.
    """
    text = decode_csv(content)
    if text is None:
        return

    # newline="" keeps quoted line breaks intact and splits on \r, \n and \r\n
    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        for fields in reader:
            cells: list[CellValue] = [
                Text(field.strip()) if field.strip() else EMPTY for field in fields
            ]
            if all(is_blank(cell) for cell in cells):
                continue
            yield cells
    except csv.Error as e:
        logger.debug(f"Stopped reading CSV at line {reader.line_num}: {e}")


def read_xlsx_rows(content: bytes) -> Iterator[list[CellValue]]:
    """
    Yield the non-blank rows of the first worksheet of an .xlsx upload.

    Other sheets are ignored even when the workbook has several. Sheet XML is
    parsed lazily, so a damaged sheet stops the rows where the damage starts.
    """
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except WORKBOOK_ERRORS as e:
        logger.debug(f"Could not open workbook: {e}")
        return

    try:
        if not workbook.worksheets:
            return
        sheet = workbook.worksheets[0]
        for values in sheet.iter_rows(values_only=True):
            cells = [to_cell(value) for value in values]
            if all(is_blank(cell) for cell in cells):
                continue
            yield cells
    except WORKBOOK_ERRORS as e:
        logger.debug(f"Stopped reading worksheet: {e}")
    finally:
        workbook.close()
