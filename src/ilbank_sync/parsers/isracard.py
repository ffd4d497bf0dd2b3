"""Isracard credit card parser."""

import logging
import re
from typing import Any, ClassVar

from ilbank_sync.models import AnalysisResult, FieldMapping
from ilbank_sync.parsers.base import (
    BankParser,
    Content,
    ParserRegistry,
    Vendor,
    find_header_row,
    is_block_end,
    row_to_record,
)
from ilbank_sync.utils.parsing import (
    Rounding,
    cell_text,
    js_number,
    normalize_date,
    to_milliunits,
)
from ilbank_sync.utils.reading import Workbook

logger = logging.getLogger(__name__)

FILE_PREFIX = "Export_"
PURCHASE_DATE = "תאריך רכישה"
PAYEE_HEADER = "שם בית עסק"
CHARGE_DATE = "תאריך חיוב"
TOTAL_CHARGE = 'סך חיוב בש"ח'
FOREIGN_SECTION = 'עסקאות בחו"ל'
FOREIGN_END_MARKERS = ("סך", "דביט", "אין נתונים")
TOTAL_FOR_DATE = "TOTAL FOR DATE"
BALANCE_COLUMN = 4

_NUMBER = re.compile(r"[\d,.]+")


def parse_isracard_amount(value: Any) -> int | None:
    """Convert a charge amount to negative milliunits, None if not numeric."""
    number = js_number(value)
    if number is None:
        return None
    return to_milliunits(number, Rounding.CENTS_TRUNCATE, negate=True)


def _cell_number(value: Any) -> float | None:
    """Read a balance from a number cell or from text such as "245.50 ₪"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        for match in _NUMBER.finditer(value):
            text = match.group(0).replace(",", "")
            if any(ch.isdigit() for ch in text):
                try:
                    return float(text)
                except ValueError:
                    return None
    return None


@ParserRegistry.register
class IsracardParser(BankParser):
    """Parser for Isracard exports (domestic and foreign blocks in one sheet)."""

    vendor: ClassVar[Vendor] = Vendor.ISRACARD
    identifier_list: ClassVar[tuple[str, ...]] = ("Isracard Statement",)
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = (
        FieldMapping(PURCHASE_DATE, "date", normalize_date),
        FieldMapping(PAYEE_HEADER, "payee_name"),
        FieldMapping("סכום חיוב", "amount", parse_isracard_amount),
        FieldMapping("פירוט נוסף", "memo"),
    )

    @classmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """Check file name prefix and the header row (row 6)."""
        if not file_name.startswith(FILE_PREFIX):
            return None
        if not isinstance(content, Workbook):
            return None

        sheet = content.first_sheet
        if not any(
            isinstance(cell, str) and (PURCHASE_DATE in cell or PAYEE_HEADER in cell)
            for cell in sheet.row(5)
        ):
            return None

        return cell_text(sheet.value(3, 0)) or None

    @staticmethod
    def find_balance(rows: list[list[Any]]) -> float | None:
        """
        Find the total charge on the statement.

        The amount usually sits in column 5 of the total row; if that cell
        is empty the whole row is scanned.

        Args:
            rows: Worksheet rows

        Returns:
            Total charge, or None if the total row is missing
        """
        for row in rows:
            if not any(isinstance(cell, str) and TOTAL_CHARGE in cell for cell in row):
                continue

            if len(row) > BALANCE_COLUMN:
                balance = _cell_number(row[BALANCE_COLUMN])
                if balance is not None:
                    return balance

            for cell in row:
                if not cell:
                    continue
                balance = _cell_number(cell)
                if balance is not None:
                    return balance
            return None
        return None

    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """Parse domestic and foreign transactions plus the total charge."""
        workbook = self.require_workbook(content, "Isracard analyzer only supports Excel files")
        rows = workbook.first_sheet.rows

        records = self._domestic_records(rows) + self._foreign_records(rows)
        logger.debug("Isracard: %d raw rows from %s", len(records), file_name)

        transactions = [
            tx for tx in self.transform_all(records) if TOTAL_CHARGE not in tx.payee_name
        ]
        return AnalysisResult(
            transactions=transactions,
            final_balance=self.find_balance(rows),
        )

    @staticmethod
    def _domestic_records(rows: list[list[Any]]) -> list[dict[str, Any]]:
        """Collect rows of the domestic block."""
        start = find_header_row(rows, PURCHASE_DATE, PAYEE_HEADER)
        if start == -1:
            return []

        headers = rows[start]
        records: list[dict[str, Any]] = []
        for row in rows[start + 1 :]:
            if is_block_end(row, (TOTAL_CHARGE, FOREIGN_SECTION)):
                break
            record = row_to_record(headers, row, keep_zero=True)
            # Summary rows only fill a couple of cells
            if len(record) < 3:
                continue
            records.append(record)
        return records

    @staticmethod
    def _foreign_records(rows: list[list[Any]]) -> list[dict[str, Any]]:
        """
        Collect rows of the foreign-currency block.

        Two layouts exist. In one, per-date subtotal rows carry
        "TOTAL FOR DATE" and are skipped. In the other, any other
        "TOTAL" text in the payee column closes the block.
        """
        start = find_header_row(rows, PURCHASE_DATE, CHARGE_DATE)
        if start == -1:
            return []

        headers = rows[start]
        records: list[dict[str, Any]] = []
        for row in rows[start + 1 :]:
            if not row:
                continue

            first = cell_text(row[0])
            if any(marker in first for marker in FOREIGN_END_MARKERS):
                break

            if any(cell_text(cell) == TOTAL_FOR_DATE for cell in row[:3]):
                continue
            if len(row) > 2 and "TOTAL" in cell_text(row[2]):
                break

            record = row_to_record(headers, row, keep_zero=True)
            if len(record) < 3:
                continue
            records.append(record)
        return records
