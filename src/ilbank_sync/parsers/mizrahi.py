"""Mizrahi Tfahot bank statement parser."""

import logging
import re
from typing import Any, ClassVar

from ilbank_sync.models import AnalysisResult, FieldMapping
from ilbank_sync.parsers.base import (
    BankParser,
    Content,
    ParserRegistry,
    Vendor,
    row_to_record,
)
from ilbank_sync.utils.html_table import (
    extract_html_account_number,
    extract_html_balance,
    find_embedded_html,
    has_statement_table,
    parse_statement_rows,
)
from ilbank_sync.utils.parsing import (
    Rounding,
    cell_text,
    js_number,
    normalize_date,
    to_milliunits,
)
from ilbank_sync.utils.reading import Sheet, Workbook

logger = logging.getLogger(__name__)

STATEMENT_TITLE = "יתרה ותנועות בחשבון"
ACCOUNT_LABEL = "מספר חשבון:"
BANK_NAME = "מזרחי טפחות"
BALANCE_LABEL = "יתרה בחשבון"

DATE = "תאריך"
TYPE = "סוג תנועה"
DETAILS = "פרטים"
DEBIT = "חובה"
CREDIT = "זכות"
REFERENCE = "אסמכתא"

# Passed to the field mappings untouched; dates may arrive as datetime cells
RAW_CELLS = (DATE, DEBIT, CREDIT)

BALANCE_CELLS = ["B1", "J5", "J6", "K5", "K6", "J10", "K10", "M5", "M6"]
HEADER_SCAN_ROWS = 20
HEADER_SCAN_COLS = 15

_NON_NUMERIC = re.compile(r"[^\d.-]")


def _parse_amount(value: Any, negate: bool) -> int | None:
    if value is None:
        return 0
    text = cell_text(value).strip()
    if text in ("", "&nbsp;"):
        return 0
    number = js_number(text.replace(",", ""))
    if number is None:
        return None
    return to_milliunits(number, Rounding.HALF_AWAY, negate=negate)


def parse_debit(value: Any) -> int | None:
    """Convert a debit (חובה) cell to negative milliunits."""
    return _parse_amount(value, negate=True)


def parse_credit(value: Any) -> int | None:
    """Convert a credit (זכות) cell to positive milliunits."""
    return _parse_amount(value, negate=False)


def parse_date(value: Any) -> str:
    """Normalize a DD/MM/YY date cell."""
    if isinstance(value, str):
        value = value.strip()
    return normalize_date(value)


def balance_from_cell(value: Any) -> float | None:
    """
    Read a balance from a cell that may carry currency text.

    Args:
        value: Cell value

    Returns:
        Balance, or None if the cell holds no number
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = _NON_NUMERIC.sub("", str(value))
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _is_html(value: Any) -> bool:
    return isinstance(value, str) and value.lstrip().startswith("<")


def _has_marker(value: Any) -> bool:
    return isinstance(value, str) and any(
        marker in value for marker in (STATEMENT_TITLE, ACCOUNT_LABEL, BANK_NAME)
    )


@ParserRegistry.register
class MizrahiTfahotParser(BankParser):
    """Parser for Mizrahi Tfahot account statements (Excel or HTML-in-Excel)."""

    vendor: ClassVar[Vendor] = Vendor.MIZRAHI_TFAHOT
    identifier_list: ClassVar[tuple[str, ...]] = ("Mizrahi Tfahot Account Statement",)
    # Credit is listed first so it wins when a row has both columns
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = (
        FieldMapping(DATE, "date", parse_date),
        FieldMapping(TYPE, "payee_name"),
        FieldMapping(CREDIT, "amount", parse_credit),
        FieldMapping(DEBIT, "amount", parse_debit),
        FieldMapping(REFERENCE, "memo"),
    )
    record_defaults: ClassVar[dict[str, Any]] = {"amount": 0}

    @classmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """
        Look for the bank's markers anywhere in the first sheet.

        HTML exports are identified by the account number printed in the
        page, falling back to a fixed statement name; sheet exports by B3.
        """
        if not isinstance(content, Workbook):
            return None

        sheet = content.first_sheet
        if not any(_has_marker(value) for value in sheet.iter_cells()):
            return None

        first = sheet.cell("A1")
        if _is_html(first):
            account_number = extract_html_account_number(first)
            if account_number:
                return account_number
            if STATEMENT_TITLE in first and (ACCOUNT_LABEL in first or BALANCE_LABEL in first):
                return "Mizrahi Tfahot Account Statement"

        return cell_text(sheet.cell("B3")) or "Mizrahi Tfahot Account"

    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """Parse the statement from its HTML table or its transactions sheet."""
        workbook = self.require_workbook(
            content, "Mizrahi Tfahot analyzer expects an Excel file"
        )

        html = find_embedded_html(workbook.first_sheet)
        if html and has_statement_table(html):
            rows = parse_statement_rows(html)
            logger.debug("Mizrahi: %d rows from HTML table in %s", len(rows), file_name)
            return AnalysisResult(
                transactions=self.transform_all(rows),
                final_balance=extract_html_balance(html),
            )

        sheet = workbook.second_sheet or workbook.first_sheet
        records = self.extract_records(sheet)
        logger.debug("Mizrahi: %d rows from sheet %r", len(records), sheet.name)
        return AnalysisResult(
            transactions=self.transform_all(records),
            final_balance=self.find_balance(workbook),
        )

    @staticmethod
    def find_balance(workbook: Workbook) -> float | None:
        """Use the first candidate cell on the second sheet that holds a number."""
        sheet = workbook.second_sheet
        if sheet is None:
            return None

        for ref in BALANCE_CELLS:
            balance = balance_from_cell(sheet.cell(ref))
            if balance is not None:
                logger.debug("Mizrahi balance taken from %s", ref)
                return balance
        return None

    @staticmethod
    def find_header(sheet: Sheet) -> tuple[int, dict[str, int]] | None:
        """
        Locate the transactions header within the top-left corner of the sheet.

        Args:
            sheet: Transactions worksheet

        Returns:
            (row index, label -> column index), or None if not found
        """
        for r in range(min(len(sheet.rows), HEADER_SCAN_ROWS)):
            columns: dict[str, int] = {}
            for c, value in enumerate(sheet.rows[r][:HEADER_SCAN_COLS]):
                if value is None or value == "":
                    continue
                columns.setdefault(cell_text(value).strip(), c)

            if (
                DATE in columns
                and (TYPE in columns or DETAILS in columns)
                and (DEBIT in columns or CREDIT in columns)
            ):
                return r, columns
        return None

    @classmethod
    def extract_records(cls, sheet: Sheet) -> list[dict[str, Any]]:
        """Collect raw rows that have a date and a debit or credit."""
        header = cls.find_header(sheet)
        if header is None:
            if not sheet.rows:
                return []
            headers = [cell_text(cell) for cell in sheet.rows[0]]
            return [
                record
                for record in (row_to_record(headers, row) for row in sheet.rows[1:])
                if record
            ]

        start, columns = header
        payee_column = columns.get(TYPE, columns.get(DETAILS))
        wanted = {
            DATE: columns.get(DATE),
            TYPE: payee_column,
            DEBIT: columns.get(DEBIT),
            CREDIT: columns.get(CREDIT),
            REFERENCE: columns.get(REFERENCE),
        }

        records: list[dict[str, Any]] = []
        for r in range(start + 1, len(sheet.rows)):
            record: dict[str, Any] = {}
            for label, column in wanted.items():
                if column is None:
                    continue
                value = sheet.value(r, column)
                if value:
                    record[label] = value if label in RAW_CELLS else cell_text(value)

            if record.get(DATE) and (record.get(DEBIT) or record.get(CREDIT)):
                records.append(record)
        return records
