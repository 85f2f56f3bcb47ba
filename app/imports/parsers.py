"""CSV and Excel parsing for equipment import.

Files are decoded into a positional grid: a header row plus data rows
whose cells line up with the original column positions. Rows are not
keyed by header here because a row may be shorter than the header row.
"""

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import PurePath

import pandas as pd

from app.imports.errors import MalformedFileError, UnsupportedFormatError

logger = logging.getLogger(__name__)


class FileFormat(str, Enum):
    """Accepted upload flavors."""

    WORKBOOK = "workbook"
    DELIMITED = "delimited"


WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm", ".xls")
DELIMITED_EXTENSIONS = (".csv", ".tsv", ".txt")

WORKBOOK_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}
DELIMITED_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/tab-separated-values",
    "text/plain",
}

CSV_DELIMITERS = ",;\t|"

# Spreadsheet row number of the first data row (the header is row 1)
FIRST_DATA_ROW = 2


@dataclass
class ParsedSheet:
    """A decoded spreadsheet.

    Attributes:
        headers: Non-blank header cells, trimmed, in file order.
        header_positions: Column index of each header in the original row.
        rows: Data rows as positional cell lists (blank rows removed).
        row_numbers: 1-based line of each data row in the file, so reported
            rows still match the file after blank rows are removed.
        sheet_names: Sheet names for workbooks, empty for delimited text.
        filename: Original upload filename.
    """

    headers: list[str]
    header_positions: list[int]
    rows: list[list[str]] = field(default_factory=list)
    row_numbers: list[int] = field(default_factory=list)
    sheet_names: list[str] = field(default_factory=list)
    filename: str = ""

    def numbered_rows(self):
        """Yield (file row number, row) pairs in file order."""
        return zip(self.row_numbers, self.rows)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    def cell(self, row: list[str], header_index: int) -> str:
        """Return the cell under a header, or "" when the row is too short."""
        position = self.header_positions[header_index]
        return row[position] if position < len(row) else ""

    def row_as_dict(self, row: list[str]) -> dict[str, str]:
        return {header: self.cell(row, i) for i, header in enumerate(self.headers)}

    def sample(self, limit: int) -> list[dict[str, str]]:
        """First ``limit`` data rows keyed by header."""
        return [self.row_as_dict(row) for row in self.rows[:limit]]


def detect_format(filename: str | None, content_type: str | None = None) -> FileFormat:
    """Decide how to decode an upload from its extension or content type.

    The extension wins when it is recognised; the declared content type is
    only consulted for files without a known extension.

    Args:
        filename: Upload filename.
        content_type: Declared MIME type.

    Returns:
        FileFormat: The format to decode with.

    Raises:
        UnsupportedFormatError: If neither hints at a supported format.
    """
    suffix = PurePath(filename or "").suffix.lower()
    if suffix in WORKBOOK_EXTENSIONS:
        return FileFormat.WORKBOOK
    if suffix in DELIMITED_EXTENSIONS:
        return FileFormat.DELIMITED

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in WORKBOOK_CONTENT_TYPES:
        return FileFormat.WORKBOOK
    if mime in DELIMITED_CONTENT_TYPES:
        return FileFormat.DELIMITED

    raise UnsupportedFormatError(
        "Unsupported file format. Use Excel (.xlsx, .xls) or CSV (.csv)"
    )


def cell_to_str(value) -> str:
    """Render a spreadsheet cell as trimmed text.

    Integral floats lose their ".0" (Excel stores every number as a float),
    dates render as ISO strings and missing values become "".
    """
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _is_blank(row: list[str]) -> bool:
    return not any(cell for cell in row)


def build_sheet(
    grid: list[list[str]], sheet_names: list[str] | None = None, filename: str = ""
) -> ParsedSheet:
    """Split a decoded grid into headers and data rows.

    The first grid row is the header row; a blank first row is rejected
    rather than skipped. Blank header cells are dropped but the remaining
    headers keep their original column positions. Repeated header text is
    made unique by suffixing " (2)", " (3)", ... so every header identifies
    one column.
    Data rows remember their 1-based line in the grid.

    Args:
        grid: Cell grid, first row being the header row.
        sheet_names: Sheet names (workbooks only).
        filename: Upload filename.

    Returns:
        ParsedSheet: The split sheet.

    Raises:
        MalformedFileError: If the grid holds no content or its first row
            has no headers.
    """
    if all(_is_blank(row) for row in grid):
        raise MalformedFileError("File is empty")

    headers: list[str] = []
    positions: list[int] = []
    seen: dict[str, int] = {}
    for position, raw in enumerate(grid[0]):
        header = raw.strip()
        if not header:
            continue
        count = seen.get(header, 0) + 1
        seen[header] = count
        headers.append(header if count == 1 else f"{header} ({count})")
        positions.append(position)

    if not headers:
        raise MalformedFileError("The first row of the file has no column headers")

    rows: list[list[str]] = []
    row_numbers: list[int] = []
    for number, row in enumerate(grid[1:], start=FIRST_DATA_ROW):
        if not _is_blank(row):
            rows.append(row)
            row_numbers.append(number)

    return ParsedSheet(
        headers=headers,
        header_positions=positions,
        rows=rows,
        row_numbers=row_numbers,
        sheet_names=sheet_names or [],
        filename=filename,
    )


def _decode_text(data: bytes) -> str:
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        if "\x00" in text:
            break
        return text
    raise MalformedFileError("File could not be decoded as text")


def parse_csv_raw(data: bytes) -> list[list[str]]:
    """Decode delimited text into a cell grid.

    The delimiter is sniffed among comma, semicolon, tab and pipe, falling
    back to comma.

    Args:
        data: Raw file bytes.

    Returns:
        list[list[str]]: Trimmed cell grid.

    Raises:
        MalformedFileError: If the bytes are not text or not parseable.
    """
    text = _decode_text(data)
    try:
        dialect = csv.Sniffer().sniff(text[:8192], delimiters=CSV_DELIMITERS)
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","

    try:
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
        return [[cell.strip() for cell in row] for row in reader]
    except csv.Error as e:
        raise MalformedFileError(f"Could not parse CSV file: {e}") from e


def parse_excel_raw(data: bytes) -> tuple[list[list[str]], list[str]]:
    """Decode the first sheet of a workbook into a cell grid.

    Args:
        data: Raw file bytes.

    Returns:
        tuple: (trimmed cell grid, sheet names).

    Raises:
        MalformedFileError: If the workbook cannot be opened.
    """
    try:
        with pd.ExcelFile(io.BytesIO(data)) as workbook:
            sheet_names = [str(name) for name in workbook.sheet_names]
            if not sheet_names:
                raise MalformedFileError("Workbook has no sheets")
            df = workbook.parse(sheet_names[0], header=None, dtype=object)
    except MalformedFileError:
        raise
    except Exception as e:
        # openpyxl, xlrd and the XML parser each raise their own error types
        logger.info(f"Workbook could not be opened: {e}")
        raise MalformedFileError("File could not be read as an Excel workbook") from e

    grid = [[cell_to_str(value) for value in record] for record in df.itertuples(index=False)]
    return grid, sheet_names


def parse_upload(
    data: bytes, filename: str | None = None, content_type: str | None = None
) -> ParsedSheet:
    """Decode an uploaded spreadsheet into headers and positional rows.

    Args:
        data: Raw file bytes.
        filename: Upload filename.
        content_type: Declared MIME type.

    Returns:
        ParsedSheet: Headers and rows.

    Raises:
        UnsupportedFormatError: If the format is not a workbook or delimited text.
        MalformedFileError: If the file is empty or cannot be decoded.
    """
    file_format = detect_format(filename, content_type)
    if not data:
        raise MalformedFileError("File is empty")

    if file_format == FileFormat.WORKBOOK:
        grid, sheet_names = parse_excel_raw(data)
    else:
        grid, sheet_names = parse_csv_raw(data), []

    return build_sheet(grid, sheet_names=sheet_names, filename=filename or "")
