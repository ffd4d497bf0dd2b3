"""Bank Hapoalim CSV parser."""

import logging
from typing import Any, ClassVar

from ilbank_sync.exceptions import UnsupportedContentError
from ilbank_sync.models import AnalysisResult, FieldMapping
from ilbank_sync.parsers.base import BankParser, Content, ParserRegistry, Vendor
from ilbank_sync.utils.parsing import Rounding, cell_text, normalize_date, to_milliunits
from ilbank_sync.utils.reading import TextContent

logger = logging.getLogger(__name__)

FILE_PREFIX = "shekel"
BALANCE_COLUMN = "יתרה לאחר פעולה"
EXPECTED_HEADERS = (
    "תאריך",
    "תיאור הפעולה",
    "פרטים",
    "חשבון",
    "אסמכתא",
    "תאריך ערך",
    "חובה",
    "זכות",
    BALANCE_COLUMN,
)


def _parse_amount(value: Any, negate: bool) -> int | None:
    text = cell_text(value).strip().replace(",", "")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return to_milliunits(number, Rounding.HALF_AWAY, negate=negate)


def parse_debit(value: Any) -> int | None:
    """Convert a debit (חובה) cell to negative milliunits; empty is None."""
    return _parse_amount(value, negate=True)


def parse_credit(value: Any) -> int | None:
    """Convert a credit (זכות) cell to positive milliunits; empty is None."""
    return _parse_amount(value, negate=False)


@ParserRegistry.register
class PoalimParser(BankParser):
    """Parser for Bank Hapoalim "shekel" CSV exports."""

    vendor: ClassVar[Vendor] = Vendor.POALIM
    identifier_list: ClassVar[tuple[str, ...]] = ("POALIM Bank Statement",)
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = (
        FieldMapping("תאריך", "date", normalize_date),
        FieldMapping("תיאור הפעולה", "payee_name"),
        FieldMapping("פרטים", "memo"),
        FieldMapping("חובה", "amount", parse_debit),
        FieldMapping("זכות", "amount", parse_credit),
    )

    @classmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """Check the "shekel" file name and the exact header row."""
        if not isinstance(content, TextContent):
            return None
        if not file_name.lower().startswith(FILE_PREFIX):
            return None

        headers = [name.strip() for name in content.fieldnames]
        # Exports end each line with a delimiter, leaving an empty last column
        while headers and not headers[-1]:
            headers.pop()
        if tuple(headers) != EXPECTED_HEADERS:
            return None

        # Account number follows the prefix
        return file_name[6:15] or None

    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """Parse debit/credit rows and take the balance from the last row."""
        if not isinstance(content, TextContent):
            raise UnsupportedContentError("Bank Hapoalim analyzer only supports CSV files")

        records = [
            {(key or "").strip(): value for key, value in record.items()}
            for record in content.records
            if any(cell_text(value).strip() for value in record.values())
        ]
        logger.debug("Poalim: %d rows from %s", len(records), file_name)

        return AnalysisResult(
            transactions=self.transform_all(records),
            final_balance=self.find_balance(records),
        )

    @staticmethod
    def find_balance(records: list[dict[str, Any]]) -> float | None:
        """Read the running balance of the last row."""
        if not records:
            return None
        text = cell_text(records[-1].get(BALANCE_COLUMN)).strip().replace(",", "")
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
