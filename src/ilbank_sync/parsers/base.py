"""Base parser class and registry for statement parsers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any, ClassVar

from ilbank_sync.exceptions import UnsupportedContentError
from ilbank_sync.models import AnalysisResult, FieldMapping, Transaction, VendorInfo
from ilbank_sync.utils.parsing import cell_text, is_blank
from ilbank_sync.utils.reading import TextContent, Workbook

logger = logging.getLogger(__name__)

Content = Workbook | TextContent


class Vendor(Enum):
    """Supported institutions, declared in detection priority order."""

    CAL = "Cal"
    ISRACARD = "Isracard"
    MAX = "Max"
    MIZRAHI_TFAHOT = "MizrahiTfahot"
    POALIM = "Bank Hapoalim"
    DISCOUNT = "Discount"

    @property
    def priority(self) -> int:
        """Position in the detection order (0 is tried first)."""
        return list(Vendor).index(self)


class BankParser(ABC):
    """Abstract base class for statement parsers."""

    # Class attributes to be overridden by subclasses
    vendor: ClassVar[Vendor]
    confidence: ClassVar[float] = 1.0
    identifier_list: ClassVar[tuple[str, ...]] = ()
    field_mappings: ClassVar[tuple[FieldMapping, ...]] = ()
    record_defaults: ClassVar[dict[str, Any]] = {}

    @classmethod
    @abstractmethod
    def detect(cls, file_name: str, content: Content) -> str | None:
        """
        Check if this parser handles the file and pull out its identifier.

        Args:
            file_name: Name of the statement file (several vendors are keyed on it)
            content: Parsed workbook or delimited text

        Returns:
            Account/card number or statement title, None if not a match
        """
        pass

    @abstractmethod
    def extract(self, content: Content, file_name: str) -> AnalysisResult:
        """
        Extract transactions and the closing balance.

        Args:
            content: Parsed workbook or delimited text
            file_name: Name of the statement file

        Returns:
            AnalysisResult (empty transaction list when nothing is found)

        Raises:
            UnsupportedContentError: If handed the wrong kind of content
        """
        pass

    @classmethod
    def vendor_info(cls) -> VendorInfo:
        """Describe this vendor for results and listings."""
        return VendorInfo(
            name=cls.vendor.value,
            confidence=cls.confidence,
            identifier_list=cls.identifier_list,
            field_mappings=cls.field_mappings,
        )

    @classmethod
    def transform(cls, row: dict[str, Any]) -> Transaction | None:
        """Map one raw row onto a Transaction using this vendor's mappings."""
        record = apply_field_mappings(row, cls.field_mappings, cls.record_defaults)
        return build_transaction(record)

    @classmethod
    def transform_all(cls, rows: Iterable[dict[str, Any]]) -> list[Transaction]:
        """Map raw rows, dropping the ones that fail amount parsing."""
        transactions: list[Transaction] = []
        for row in rows:
            tx = cls.transform(row)
            if tx is not None:
                transactions.append(tx)
        return transactions

    def require_workbook(self, content: Content, message: str) -> Workbook:
        """Return content as a Workbook or raise UnsupportedContentError."""
        if not isinstance(content, Workbook):
            raise UnsupportedContentError(message)
        return content


class ParserRegistry:
    """Registry for statement parsers with automatic detection."""

    _parsers: ClassVar[list[type[BankParser]]] = []

    @classmethod
    def register(cls, parser_class: type[BankParser]) -> type[BankParser]:
        """
        Register a parser class. Can be used as a decorator.

        Example:
            @ParserRegistry.register
            class MyBankParser(BankParser):
                ...
        """
        if parser_class not in cls._parsers:
            cls._parsers.append(parser_class)
        return parser_class

    @classmethod
    def detect_vendor(
        cls,
        file_name: str,
        content: Content,
    ) -> tuple[type[BankParser] | None, str | None]:
        """
        Find the first parser, in priority order, that claims the file.

        Args:
            file_name: Name of the statement file
            content: Parsed workbook or delimited text

        Returns:
            (parser class, identifier), or (None, None) if unrecognized
        """
        for parser_class in cls.get_all_parsers():
            identifier = parser_class.detect(file_name, content)
            if identifier:
                logger.debug("%s matched %s", parser_class.vendor.value, file_name)
                return parser_class, identifier
        return None, None

    @classmethod
    def get_parser(cls, vendor: Vendor) -> BankParser | None:
        """Get a parser instance for a vendor, None if not registered."""
        for parser_class in cls._parsers:
            if parser_class.vendor is vendor:
                return parser_class()
        return None

    @classmethod
    def get_all_parsers(cls) -> list[type[BankParser]]:
        """Get all registered parser classes in detection order."""
        return sorted(cls._parsers, key=lambda parser: parser.vendor.priority)

    @classmethod
    def clear(cls) -> None:
        """Clear all registered parsers (mainly for testing)."""
        cls._parsers = []


def apply_field_mappings(
    row: dict[str, Any],
    mappings: Sequence[FieldMapping],
    defaults: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Apply field mappings to one raw row.

    When several mappings target the same field, the first one wins
    unless it produced a blank value (None, "" or 0), in which case a
    later mapping may still fill it.

    Args:
        row: Raw row keyed by source column
        mappings: Vendor mappings, in order
        defaults: Field values used when no mapping writes them

    Returns:
        Dict with at least date, payee_name and memo keys
    """
    written: dict[str, Any] = {}
    for mapping in mappings:
        if mapping.source not in row:
            continue
        if not is_blank(written.get(mapping.target)):
            continue
        written[mapping.target] = mapping.apply(row[mapping.source])

    return {"date": "", "payee_name": "", "memo": "", **(defaults or {}), **written}


def build_transaction(record: dict[str, Any]) -> Transaction | None:
    """
    Build a Transaction from a mapped record.

    Args:
        record: Output of apply_field_mappings

    Returns:
        Transaction, or None if the amount is missing or not a number
    """
    amount = record.get("amount")
    if amount is None or isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return None
    if amount != amount:  # NaN
        return None

    return Transaction(
        date=cell_text(record.get("date")),
        amount=int(amount),
        payee_name=cell_text(record.get("payee_name")),
        memo=cell_text(record.get("memo")),
    )


def row_to_record(
    headers: Sequence[Any],
    row: Sequence[Any],
    keep_zero: bool = False,
) -> dict[str, Any]:
    """
    Key a row by its header labels, keeping only populated cells.

    Args:
        headers: Header row
        row: Data row
        keep_zero: Keep numeric zero cells (dropped by default)

    Returns:
        Dict of header label to cell value
    """
    record: dict[str, Any] = {}
    for index, header in enumerate(headers):
        if not header or index >= len(row):
            continue
        value = row[index]
        if value is None or value == "":
            continue
        if not keep_zero and value == 0:
            continue
        record[str(header)] = value
    return record


def find_header_row(rows: Sequence[Sequence[Any]], *labels: str, start: int = 0) -> int:
    """
    Find the first row whose leading cells equal the given labels.

    Args:
        rows: Worksheet rows
        labels: Expected values of the first len(labels) cells
        start: Row index to start searching from

    Returns:
        Row index, or -1 if not found
    """
    for index in range(start, len(rows)):
        row = rows[index]
        if len(row) < len(labels):
            continue
        if all(cell_text(row[i]).strip() == label for i, label in enumerate(labels)):
            return index
    return -1


def is_block_end(row: Sequence[Any], sentinels: Iterable[str] = ()) -> bool:
    """
    Check whether a row ends a transaction block.

    A block ends at an empty row, a row with no first (date) cell, or a
    first cell containing one of the vendor's summary phrases.

    Args:
        row: Worksheet row
        sentinels: Summary phrases for this vendor

    Returns:
        True if scanning should stop
    """
    if not row or row[0] is None or row[0] == "":
        return True
    first = cell_text(row[0])
    return any(sentinel in first for sentinel in sentinels)
