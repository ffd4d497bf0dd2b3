"""Reading statement files into sheets and delimited records."""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import openpyxl
import xlrd  # type: ignore[import-untyped]

from ilbank_sync.exceptions import StatementFormatError

logger = logging.getLogger(__name__)

OLE2_MAGIC = b"\xd0\xcf\x11\xe0"
ZIP_MAGIC = b"PK\x03\x04"
DELIMITERS = [",", ";", "\t", "|"]
ENCODINGS = ["utf-8-sig", "utf-8", "cp1255", "latin-1"]

_CELL_REF = re.compile(r"^([A-Z]+)(\d+)$")


def _trim_row(row: list[Any]) -> list[Any]:
    """Drop trailing empty cells; a row with no values becomes []."""
    end = len(row)
    while end and (row[end - 1] is None or row[end - 1] == ""):
        end -= 1
    return list(row[:end])


@dataclass
class Sheet:
    """One worksheet as a list of rows, in the order they appear."""

    name: str
    rows: list[list[Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Normalize row lengths."""
        self.rows = [_trim_row(list(row)) for row in self.rows]

    def row(self, index: int) -> list[Any]:
        """Get a row by zero-based index, empty if out of range."""
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return []

    def value(self, row: int, col: int) -> Any:
        """Get a cell by zero-based row and column, None if missing."""
        cells = self.row(row)
        if 0 <= col < len(cells):
            return cells[col]
        return None

    def cell(self, ref: str) -> Any:
        """
        Get a cell by A1-style reference.

        Args:
            ref: Reference such as "E9"

        Returns:
            Cell value, or None if the cell is empty or out of range
        """
        match = _CELL_REF.match(ref.upper())
        if not match:
            raise ValueError(f"Invalid cell reference: {ref}")

        letters, number = match.groups()
        col = 0
        for letter in letters:
            col = col * 26 + (ord(letter) - ord("A") + 1)
        return self.value(int(number) - 1, col - 1)

    def iter_cells(self) -> list[Any]:
        """Get every non-empty cell value in row order."""
        return [value for row in self.rows for value in row if value not in (None, "")]


@dataclass
class Workbook:
    """Spreadsheet content: one or more worksheets."""

    sheets: list[Sheet] = field(default_factory=list)

    @property
    def sheet_names(self) -> list[str]:
        """Names of all worksheets in order."""
        return [sheet.name for sheet in self.sheets]

    @property
    def first_sheet(self) -> Sheet:
        """The first worksheet (an empty sheet if there are none)."""
        return self.sheets[0] if self.sheets else Sheet("Sheet1")

    @property
    def second_sheet(self) -> Sheet | None:
        """The second worksheet, if the workbook has one."""
        return self.sheets[1] if len(self.sheets) > 1 else None


@dataclass
class TextContent:
    """Delimited text content with its detected layout."""

    text: str
    delimiter: str
    fieldnames: list[str]
    records: list[dict[str, Any]]
    rows: list[list[str]]

    def as_sheet(self, name: str = "Sheet1") -> Sheet:
        """Present the raw rows as a worksheet."""
        return Sheet(name, self.rows)


def detect_delimiter(text: str, sample_lines: int = 5) -> str:
    """
    Pick the most frequent delimiter in the first few lines.

    Args:
        text: Delimited text
        sample_lines: Number of lines to inspect

    Returns:
        The winning delimiter (comma on ties or when none is present)
    """
    sample = text.splitlines()[:sample_lines]
    counts = {delim: sum(line.count(delim) for line in sample) for delim in DELIMITERS}
    best = max(DELIMITERS, key=lambda delim: counts[delim])
    return best if counts[best] else ","


def read_delimited(text: str) -> TextContent:
    """
    Parse delimited text into header-keyed records.

    If the header-based parse gives fewer than two records, the text is
    re-read without headers and the first non-blank row is zipped onto
    the rest.

    Args:
        text: Decoded file content

    Returns:
        TextContent with fieldnames, records and raw rows
    """
    delimiter = detect_delimiter(text)
    rows = [row for row in csv.reader(io.StringIO(text), delimiter=delimiter)]

    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    records: list[dict[str, Any]] = [dict(record) for record in reader]
    fieldnames = list(reader.fieldnames or [])

    if len(records) < 2 or not any(fieldnames):
        non_blank = [row for row in rows if any(cell.strip() for cell in row)]
        if non_blank:
            fieldnames = non_blank[0]
            records = [dict(zip(fieldnames, row)) for row in non_blank[1:]]
            logger.debug("Headerless fallback gave %d records", len(records))

    return TextContent(
        text=text,
        delimiter=delimiter,
        fieldnames=fieldnames,
        records=records,
        rows=rows,
    )


def decode_text(data: bytes, file_name: str = "") -> str:
    """
    Decode file bytes with the first encoding that works.

    Args:
        data: Raw file content
        file_name: Used in the error message

    Returns:
        Decoded text

    Raises:
        StatementFormatError: If no known encoding fits
    """
    for encoding in ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue

    raise StatementFormatError(f"Could not decode file {file_name} with any known encoding")


def looks_like_html(data: bytes) -> bool:
    """Check whether spreadsheet bytes are actually an HTML export."""
    head = data[:512].lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    return head.startswith(b"<")


def read_workbook(data: bytes, file_name: str = "") -> Workbook:
    """
    Read spreadsheet bytes into a Workbook.

    Handles legacy .xls (OLE2), .xlsx/.xlsm (zip), and the HTML pages some
    banks save with an .xls extension, which come back as a single sheet
    whose A1 cell holds the whole page.

    Args:
        data: Raw file content
        file_name: Used in error messages

    Returns:
        Workbook with every sheet

    Raises:
        StatementFormatError: If the bytes are not a readable spreadsheet
    """
    if data[:4] == OLE2_MAGIC:
        return _read_xls(data, file_name)
    if data[:4] == ZIP_MAGIC:
        return _read_xlsx(data, file_name)
    if looks_like_html(data):
        logger.debug("Reading %s as an HTML export", file_name)
        return Workbook([Sheet("Sheet1", [[decode_text(data, file_name)]])])

    raise StatementFormatError(f"Could not read Excel file {file_name}: unrecognized file format")


def _read_xls(data: bytes, file_name: str) -> Workbook:
    """Read a legacy Excel workbook."""
    try:
        book = xlrd.open_workbook(file_contents=data)
    except Exception as e:
        raise StatementFormatError(f"Could not read Excel file {file_name}: {e}") from e

    sheets: list[Sheet] = []
    for xl_sheet in book.sheets():
        rows: list[list[Any]] = []
        for r in range(xl_sheet.nrows):
            row: list[Any] = []
            for c in range(xl_sheet.ncols):
                cell = xl_sheet.cell(r, c)
                if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
                    row.append(None)
                elif cell.ctype == xlrd.XL_CELL_DATE:
                    try:
                        row.append(xlrd.xldate_as_datetime(cell.value, book.datemode))
                    except (ValueError, OverflowError):
                        row.append(cell.value)
                elif cell.ctype == xlrd.XL_CELL_BOOLEAN:
                    row.append(bool(cell.value))
                else:
                    row.append(cell.value)
            rows.append(row)
        sheets.append(Sheet(xl_sheet.name, rows))
    return Workbook(sheets)


def _read_xlsx(data: bytes, file_name: str) -> Workbook:
    """Read an Office Open XML workbook."""
    try:
        book = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise StatementFormatError(f"Could not read Excel file {file_name}: {e}") from e

    try:
        sheets = [
            Sheet(ws.title, [list(row) for row in ws.iter_rows(values_only=True)])
            for ws in book.worksheets
        ]
    finally:
        book.close()
    return Workbook(sheets)
