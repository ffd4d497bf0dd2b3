"""Cal credit card parser."""

import logging
import re
from typing import Any, ClassVar

from ilbank_sync.models import AnalysisResult, FieldMapping
from ilbank_sync.parsers.base import (
    BankParser,
    Content,
    ParserRegistry,
    Vendor,
    is_block_end,
    row_to_record,
)
from ilbank_sync.utils.parsing import (
    Rounding,
    cell_text,
    collapse_whitespace,
    normalize_date,
    parse_float,
    parse_localized_number,
    to_milliunits,
)
from ilbank_sync.utils.reading import Workbook

logger = logging.getLogger(__name__)

FILE_PREFIX = "פירוט חיובים לכרטיס"
DATE_HEADER = "תאריך עסקה"
PAYEE_HEADER = "שם בית עסק"
BALANCE_PHRASE = "עסקאות לחיוב"
NOT_A_NUMBER = "לא מספר"

_CURRENCY_NOISE = re.compile(r"[₪\s,]")


def parse_cal_amount(value: Any) -> int | None:
    """
    Convert a Cal charge amount to negative milliunits.

    Empty cells are zero-amount rows; the "not a number" marker and any
    other unparseable text drop the row.
    """
    if value is None or value == "":
        return 0

    text = cell_text(value)
    if text == NOT_A_NUMBER:
        return None

    number = parse_float(_CURRENCY_NOISE.sub("", text))
    if number is None:
        return None
    return to_milliunits(number, Rounding.FLOOR, negate=True)


@ParserRegistry.register
class CalParser(BankParser):
    """Parser for Cal credit card exports (single-sheet Excel)."""

    vendor: ClassVar[Vendor] = Vendor.CAL
    identifier_list: ClassVar[tuple[str, ...]] = ("Cal Statement",)
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = (
        FieldMapping(DATE_HEADER, "date", normalize_date),
        FieldMapping(PAYEE_HEADER, "payee_name"),
        FieldMapping("סכום חיוב", "amount", parse_cal_amount),
        FieldMapping("הערות", "memo"),
    )
    record_defaults: ClassVar[dict[str, Any]] = {"amount": 0}

    @classmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """Check file name prefix and the header row (row 5)."""
        if not file_name.startswith(FILE_PREFIX):
            return None
        if not isinstance(content, Workbook):
            return None

        sheet = content.first_sheet
        headers = {
            collapse_whitespace(cell)
            for cell in sheet.row(4)
            if isinstance(cell, str)
        }
        if DATE_HEADER not in headers and PAYEE_HEADER not in headers:
            return None

        # Card number sits in the first cell
        return cell_text(sheet.value(0, 0)) or None

    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """Parse Cal transactions and the charge total."""
        workbook = self.require_workbook(content, "Cal analyzer only supports Excel files")
        rows = workbook.first_sheet.rows

        final_balance = None
        if len(rows) > 2 and rows[2]:
            balance_cell = rows[2][0]
            if isinstance(balance_cell, str) and BALANCE_PHRASE in balance_cell:
                final_balance = parse_localized_number(balance_cell)

        header_index = -1
        for index, row in enumerate(rows):
            if len(row) < 2:
                continue
            if (
                collapse_whitespace(cell_text(row[0])) == DATE_HEADER
                and collapse_whitespace(cell_text(row[1])) == PAYEE_HEADER
            ):
                header_index = index
                break

        if header_index == -1:
            logger.debug("No Cal header row in %s", file_name)
            return AnalysisResult(final_balance=final_balance)

        headers = [collapse_whitespace(cell_text(cell)) for cell in rows[header_index]]
        records: list[dict[str, Any]] = []
        for row in rows[header_index + 1 :]:
            if is_block_end(row):
                break
            records.append(row_to_record(headers, row))

        logger.debug("Cal: %d raw rows from %s", len(records), file_name)
        return AnalysisResult(
            transactions=self.transform_all(records),
            final_balance=final_balance,
        )
