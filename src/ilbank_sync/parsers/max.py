"""Max credit card parser."""

import logging
import re
from functools import partial
from typing import Any, ClassVar

from ilbank_sync.models import AnalysisResult, FieldMapping, Transaction
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
    normalize_date,
    parse_float,
    parse_localized_number,
    to_milliunits,
)
from ilbank_sync.utils.reading import Sheet, Workbook

logger = logging.getLogger(__name__)

FILE_MARKER = "transaction-details_export_"
DATE_HEADER = "תאריך עסקה"
PAYEE_HEADER = "שם בית העסק"
TOTAL_PHRASE = "סך הכל"
CURRENCY = "₪"
DEFAULT_IDENTIFIER = "Max Statement"

_CURRENCY_NOISE = re.compile(r"[₪\s,]")


def parse_max_amount(value: Any) -> int | None:
    """
    Convert a Max charge amount to negative milliunits.

    Text amounts are floored, numeric cells are rounded half up.
    """
    if not value or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return to_milliunits(value, Rounding.HALF_UP, negate=True)
    if isinstance(value, str):
        number = parse_float(_CURRENCY_NOISE.sub("", value))
        if number is None:
            return None
        return to_milliunits(number, Rounding.FLOOR, negate=True)
    return None


@ParserRegistry.register
class MaxParser(BankParser):
    """Parser for Max exports (one tab per card or currency)."""

    vendor: ClassVar[Vendor] = Vendor.MAX
    identifier_list: ClassVar[tuple[str, ...]] = (DEFAULT_IDENTIFIER,)
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = (
        FieldMapping(DATE_HEADER, "date", partial(normalize_date, separator="-")),
        FieldMapping(PAYEE_HEADER, "payee_name"),
        FieldMapping("סכום חיוב", "amount", parse_max_amount),
        FieldMapping("הערות", "memo"),
    )

    @classmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """Check file name and the header row (row 4)."""
        if FILE_MARKER not in file_name.lower():
            return None
        if not isinstance(content, Workbook):
            return None

        sheet = content.first_sheet
        if not any(
            isinstance(cell, str) and (DATE_HEADER in cell or PAYEE_HEADER in cell)
            for cell in sheet.row(3)
        ):
            return None

        return cell_text(sheet.value(1, 0)) or DEFAULT_IDENTIFIER

    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """Parse every tab and sum the per-tab balances."""
        workbook = self.require_workbook(content, "Max analyzer only supports Excel files")

        result = AnalysisResult()
        for sheet in workbook.sheets:
            transactions, balance = self._process_sheet(sheet)
            result.transactions.extend(transactions)
            if balance is not None:
                result.balances_by_tab[sheet.name] = balance
            logger.debug("Max tab %r: %d transactions", sheet.name, len(transactions))

        if result.balances_by_tab:
            result.final_balance = sum(result.balances_by_tab.values())
        return result

    def _process_sheet(self, sheet: Sheet) -> tuple[list[Transaction], float | None]:
        """Parse one tab; returns (transactions, tab balance)."""
        rows = sheet.rows
        start = find_header_row(rows, DATE_HEADER, PAYEE_HEADER)
        if start == -1:
            return [], None

        headers = rows[start]
        records: list[dict[str, Any]] = []
        end = len(rows)
        for index in range(start + 1, len(rows)):
            if is_block_end(rows[index]):
                end = index
                break
            records.append(row_to_record(headers, rows[index]))

        return self.transform_all(records), self.find_tab_balance(rows[end:])

    @staticmethod
    def find_tab_balance(rows: list[list[Any]]) -> float | None:
        """
        Find a tab's balance in the rows after its transaction block.

        The amount is the first cell of the row under the "total" label.
        Failing that, the first cell carrying the shekel sign is used.

        Args:
            rows: Rows following the transaction block

        Returns:
            Balance, or None if neither layout is present
        """
        for index, row in enumerate(rows):
            if row and TOTAL_PHRASE in cell_text(row[0]) and index + 1 < len(rows):
                following = rows[index + 1]
                if following:
                    balance = parse_localized_number(following[0])
                    if balance is not None:
                        return balance

        for row in rows:
            for cell in row:
                if isinstance(cell, str) and CURRENCY in cell:
                    balance = parse_localized_number(cell)
                    if balance is not None:
                        return balance
        return None
