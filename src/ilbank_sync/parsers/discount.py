"""Discount Bank account statement parser."""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, ClassVar

from ilbank_sync.exceptions import UnsupportedContentError
from ilbank_sync.models import AnalysisResult, FieldMapping
from ilbank_sync.parsers.base import BankParser, Content, ParserRegistry, Vendor
from ilbank_sync.utils.parsing import Rounding, cell_text, js_number, to_milliunits
from ilbank_sync.utils.reading import Sheet, TextContent, Workbook

logger = logging.getLogger(__name__)

FILE_PREFIX = "עובר ושב_"
SHEET_TITLE = "עובר ושב"
DEFAULT_IDENTIFIER = "Discount Account"
HEADER_ROW = 7
BALANCE_CELL = "E9"
DATE_HEADER = "תאריך"

EXCEL_EPOCH = date(1899, 12, 30)

_NON_NUMERIC = re.compile(r"[^\d.-]")


def parse_discount_date(value: Any) -> str:
    """
    Normalize a Discount date cell.

    Accepts spreadsheet dates, Excel serial day numbers and month-first
    text (M/D/YY). Anything else is returned unchanged.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = cell_text(value).strip()
    serial = js_number(text) if text else None
    if serial is not None:
        return (EXCEL_EPOCH + timedelta(days=int(serial))).isoformat()

    parts = text.split("/")
    if "/" in text and len(parts) == 3:
        month, day, year = (part.strip() for part in parts)
        if len(year) == 2:
            year = f"20{year}"
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    return text


def parse_discount_amount(value: Any) -> int | None:
    """Convert a signed amount to milliunits; blank is 0, garbage is None."""
    text = cell_text(value).strip()
    if not text:
        return 0
    number = js_number(text.replace(",", ""))
    if number is None:
        return None
    return to_milliunits(number, Rounding.HALF_AWAY)


def _as_sheet(content: Content) -> Sheet | None:
    if isinstance(content, Workbook):
        return content.first_sheet
    if isinstance(content, TextContent):
        return content.as_sheet()
    return None


@ParserRegistry.register
class DiscountParser(BankParser):
    """Parser for Discount Bank "עובר ושב" exports (fixed cell layout)."""

    vendor: ClassVar[Vendor] = Vendor.DISCOUNT
    identifier_list: ClassVar[tuple[str, ...]] = (SHEET_TITLE,)
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = (
        FieldMapping(DATE_HEADER, "date", parse_discount_date),
        FieldMapping("תיאור התנועה", "payee_name"),
        FieldMapping("₪ זכות/חובה", "amount", parse_discount_amount),
        FieldMapping("אסמכתה", "memo"),
    )
    record_defaults: ClassVar[dict[str, Any]] = {"amount": 0}

    @classmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """Check the file name prefix and the sheet title in A1."""
        if not file_name.startswith(FILE_PREFIX):
            return None

        sheet = _as_sheet(content)
        if sheet is None or cell_text(sheet.cell("A1")).strip() != SHEET_TITLE:
            return None

        return cell_text(sheet.cell("A2")) or DEFAULT_IDENTIFIER

    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """Parse rows under the fixed header row and read the balance from E9."""
        sheet = _as_sheet(content)
        if sheet is None:
            raise UnsupportedContentError("Discount analyzer expects an Excel or CSV file")

        records = self.extract_records(sheet)
        logger.debug("Discount: %d rows from %s", len(records), file_name)
        return AnalysisResult(
            transactions=self.transform_all(records),
            final_balance=self.find_balance(sheet),
        )

    @staticmethod
    def find_balance(sheet: Sheet) -> float | None:
        """Read the closing balance from its fixed cell."""
        value = sheet.cell(BALANCE_CELL)
        if value is None or isinstance(value, bool):
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

    @staticmethod
    def extract_records(sheet: Sheet) -> list[dict[str, Any]]:
        """Key each data row by the header row, keeping rows with a date."""
        headers = [cell_text(cell).strip() for cell in sheet.row(HEADER_ROW)]

        records: list[dict[str, Any]] = []
        for row in sheet.rows[HEADER_ROW + 1 :]:
            record: dict[str, Any] = {}
            for index, value in enumerate(row):
                if index < len(headers) and headers[index] and value is not None:
                    record[headers[index]] = value
            if record and record.get(DATE_HEADER):
                records.append(record)
        return records
