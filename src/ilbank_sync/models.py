"""Data models for normalized statement transactions."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Transaction:
    """Represents a normalized transaction ready for the ledger.

    Amounts are signed milliunits (1/1000 of a shekel): expenses are
    negative, income and credits are positive.
    """

    date: str
    amount: int
    payee_name: str = ""
    memo: str = ""

    @property
    def is_expense(self) -> bool:
        """Return True if this is an expense (negative amount)."""
        return self.amount < 0

    @property
    def is_income(self) -> bool:
        """Return True if this is income (positive amount)."""
        return self.amount > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for CSV output and JSON payloads."""
        return {
            "date": self.date,
            "payee_name": self.payee_name,
            "amount": self.amount,
            "memo": self.memo,
        }


@dataclass(frozen=True)
class FieldMapping:
    """Maps one source column onto one transaction field."""

    source: str
    target: str
    transform: Callable[[Any], Any] | None = None

    def apply(self, value: Any) -> Any:
        """Run the transform (if any) over a raw cell value."""
        if self.transform is None:
            return value
        return self.transform(value)


@dataclass(frozen=True)
class VendorInfo:
    """Static description of a supported institution."""

    name: str
    confidence: float = 1.0
    identifier_list: tuple[str, ...] = ()
    field_mappings: tuple[FieldMapping, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the public per-file output shape."""
        return {
            "name": self.name,
            "confidence": self.confidence,
            "identifierList": list(self.identifier_list),
        }


@dataclass
class AnalysisResult:
    """Output of a vendor analyzer's extract step."""

    transactions: list[Transaction] = field(default_factory=list)
    final_balance: float | None = None
    balances_by_tab: dict[str, float] = field(default_factory=dict)


@dataclass
class FileAnalysis:
    """Result of analyzing one uploaded file.

    Either ``error`` is set (and nothing else is), or the vendor fields
    are populated. An unrecognized file has neither.
    """

    file_name: str
    vendor_info: VendorInfo | None = None
    identifier: str | None = None
    transactions: list[Transaction] = field(default_factory=list)
    final_balance: float | None = None
    balances_by_tab: dict[str, float] = field(default_factory=dict)
    error: str | None = None
    account_id: str | None = None

    @property
    def recognized(self) -> bool:
        """Return True if a vendor matched the file."""
        return self.vendor_info is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the public per-file output shape."""
        return {
            "fileName": self.file_name,
            "vendorInfo": self.vendor_info.to_dict() if self.vendor_info else None,
            "identifier": self.identifier,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "finalBalance": self.final_balance,
            "error": self.error,
        }


@dataclass
class BalanceReconciliation:
    """Statement balance compared against a YNAB account."""

    account_name: str
    current_balance: int
    cleared_balance: int
    file_balance: int | None
    file_name: str
    difference: int | None = None
    direction: str | None = None

    @property
    def is_balanced(self) -> bool:
        """Return True if the statement agrees with the cleared balance."""
        return self.difference == 0
