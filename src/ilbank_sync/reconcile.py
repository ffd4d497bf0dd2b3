"""Compare statement balances with YNAB account balances."""

from typing import Any, NamedTuple

from ilbank_sync.models import BalanceReconciliation
from ilbank_sync.utils.parsing import Rounding, to_milliunits

MISSING_IN_LEDGER = "missing transactions in ledger"
EXTRA_IN_LEDGER = "extra transactions in ledger"


class ReconciliationResult(NamedTuple):
    """Signed difference and a hint about which side is short."""

    difference: int | None
    direction: str | None


def reconcile(file_balance: int | None, cleared_balance: int) -> ReconciliationResult:
    """
    Compare a statement balance with an account's cleared balance.

    Both balances are milliunits. The difference is file - cleared.

    Args:
        file_balance: Balance computed from the statement, None if unknown
        cleared_balance: Cleared balance reported by YNAB

    Returns:
        ReconciliationResult; direction is None when balanced or unknown
    """
    if file_balance is None:
        return ReconciliationResult(None, None)

    difference = file_balance - cleared_balance
    if difference < 0:
        return ReconciliationResult(difference, MISSING_IN_LEDGER)
    if difference > 0:
        return ReconciliationResult(difference, EXTRA_IN_LEDGER)
    return ReconciliationResult(0, None)


def balance_to_milliunits(final_balance: float | None) -> int | None:
    """Scale a statement balance in shekels to milliunits."""
    if final_balance is None:
        return None
    return to_milliunits(final_balance, Rounding.HALF_AWAY)


def reconcile_account(
    account: dict[str, Any],
    file_name: str,
    final_balance: float | None,
) -> BalanceReconciliation:
    """
    Build a reconciliation record for one YNAB account.

    Args:
        account: Account object from the YNAB API (name, balance, cleared_balance)
        file_name: Statement the balance came from
        final_balance: Statement balance in shekels, None if not found

    Returns:
        BalanceReconciliation with difference and direction filled in
    """
    file_balance = balance_to_milliunits(final_balance)
    cleared_balance = int(account.get("cleared_balance", 0))
    result = reconcile(file_balance, cleared_balance)

    return BalanceReconciliation(
        account_name=str(account.get("name", "")),
        current_balance=int(account.get("balance", 0)),
        cleared_balance=cleared_balance,
        file_balance=file_balance,
        file_name=file_name,
        difference=result.difference,
        direction=result.direction,
    )
