"""YNAB API client for uploading transactions."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

import requests

from ilbank_sync.exceptions import AuthenticationError, LedgerError
from ilbank_sync.models import Transaction
from ilbank_sync.storage import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_EXPIRY_KEY,
    KeyValueStore,
)

logger = logging.getLogger(__name__)

Cleared = Literal["cleared", "uncleared", "reconciled"]
TokenRefresher = Callable[[str], dict[str, Any]]


@dataclass
class UploadResult:
    """Result of uploading transactions to YNAB."""

    uploaded: int
    skipped: int
    errors: list[str]

    @property
    def total(self) -> int:
        """Total transactions processed."""
        return self.uploaded + self.skipped


def generate_import_id(tx: Transaction) -> str:
    """Generate the deterministic import_id YNAB uses to drop resubmissions."""
    return f"YNAB:{tx.amount}:{tx.date}:1"


def transaction_to_payload(
    tx: Transaction,
    account_id: str,
    cleared: Cleared = "cleared",
    approved: bool = False,
) -> dict[str, Any]:
    """Convert a Transaction to YNAB API payload format."""
    return {
        "account_id": account_id,
        "date": tx.date,
        "amount": tx.amount,
        "payee_name": tx.payee_name,
        "memo": tx.memo,
        "cleared": cleared,
        "approved": approved,
        "import_id": generate_import_id(tx),
    }


def is_valid_payload(payload: dict[str, Any]) -> bool:
    """Check the fields YNAB requires before a transaction is sent."""
    if not payload.get("date") or not payload.get("payee_name") or not payload.get("account_id"):
        return False
    amount = payload.get("amount")
    return isinstance(amount, int) and not isinstance(amount, bool)


def pick_primary_budget(budgets: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the budget with the oldest first month, the one most likely in use."""
    if not budgets:
        return None
    return min(budgets, key=lambda budget: budget.get("first_month") or "9999-99")


class OAuthTokenRefresher:
    """
    Exchanges a YNAB refresh token for new tokens.

    Needs the OAuth application's client id and secret, sent with HTTP
    basic auth to the token endpoint.
    """

    TOKEN_URL = "https://app.ynab.com/oauth/token"

    def __init__(self, client_id: str, client_secret: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret

    def __call__(self, refresh_token: str) -> dict[str, Any]:
        """
        Request new tokens.

        Returns:
            Token response with access_token, refresh_token and expires_in

        Raises:
            LedgerError: If the token endpoint refuses the refresh token
        """
        response = requests.post(
            self.TOKEN_URL,
            json={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(self.client_id, self.client_secret),
        )
        if not response.ok:
            raise LedgerError(
                f"Failed to refresh token: {response.text or response.reason}",
                response.status_code,
            )
        return response.json()  # type: ignore[no-any-return]


class YNABClient:
    """Client for interacting with the YNAB API."""

    BASE_URL = "https://api.ynab.com/v1"
    MAX_BATCH_SIZE = 500

    def __init__(
        self,
        access_token: str,
        refresh_token: str | None = None,
        token_refresher: TokenRefresher | None = None,
        store: KeyValueStore | None = None,
        token_expiry: float | None = None,
    ) -> None:
        """
        Initialize client with OAuth tokens.

        Args:
            access_token: Bearer token for the API
            refresh_token: Token handed to token_refresher on expiry
            token_refresher: Exchanges a refresh token for new tokens; must
                return a dict with access_token, refresh_token and expires_in
            store: Where refreshed tokens are saved (and cleared on failure)
            token_expiry: Unix time at which access_token expires, if known
        """
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.token_expiry = token_expiry
        self._token_refresher = token_refresher
        self._store = store
        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        })

    def _refresh_access_token(self) -> None:
        """Exchange the refresh token for a new access token."""
        if not self.refresh_token or self._token_refresher is None:
            raise LedgerError("No refresh token available")

        data = self._token_refresher(self.refresh_token)
        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token", self.refresh_token)
        expires_in = data.get("expires_in")
        self.token_expiry = time.time() + float(expires_in) if expires_in else None
        self._session.headers["Authorization"] = f"Bearer {self.access_token}"
        logger.info("Refreshed YNAB access token")

        if self._store is not None:
            self._store.set(ACCESS_TOKEN_KEY, self.access_token)
            self._store.set(REFRESH_TOKEN_KEY, self.refresh_token)
            self._store.set(TOKEN_EXPIRY_KEY, self.token_expiry)

    def _clear_stored_tokens(self) -> None:
        if self._store is None:
            return
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRY_KEY):
            self._store.delete(key)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Pull the API's error detail out of a failed response."""
        try:
            detail = response.json().get("error", {}).get("detail")
        except ValueError:
            detail = None
        return f"YNAB API error: {detail or response.reason}"

    def _request(
        self,
        method: str,
        endpoint: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make an API request.

        An expired or rejected token is refreshed once and the request is
        retried once. If that also fails, stored tokens are cleared.

        Raises:
            AuthenticationError: If the retry after refreshing fails
            LedgerError: For any other non-2xx response
        """
        if self.token_expiry is not None and time.time() >= self.token_expiry:
            self._refresh_access_token()

        url = f"{self.BASE_URL}/{endpoint}"
        response = self._session.request(method, url, json=json)

        if response.status_code == 401:
            try:
                self._refresh_access_token()
                response = self._session.request(method, url, json=json)
                if not response.ok:
                    raise LedgerError(self._error_message(response), response.status_code)
            except Exception as e:
                logger.warning("YNAB authentication failed after refresh: %s", e)
                self._clear_stored_tokens()
                raise AuthenticationError(
                    "Authentication failed. Please reconnect to YNAB.", 401
                ) from e

        if not response.ok:
            raise LedgerError(self._error_message(response), response.status_code)

        return response.json()  # type: ignore[no-any-return]

    def get_budgets(self) -> list[dict[str, Any]]:
        """Get all budgets the token can see."""
        result = self._request("GET", "budgets")
        return result.get("data", {}).get("budgets", [])  # type: ignore[no-any-return]

    def get_accounts(self, budget_id: str) -> list[dict[str, Any]]:
        """Get all accounts of a budget."""
        result = self._request("GET", f"budgets/{budget_id}/accounts")
        return result.get("data", {}).get("accounts", [])  # type: ignore[no-any-return]

    def get_account(self, budget_id: str, account_id: str) -> dict[str, Any]:
        """Get one account, including its balance and cleared balance."""
        result = self._request("GET", f"budgets/{budget_id}/accounts/{account_id}")
        return result.get("data", {}).get("account", {})  # type: ignore[no-any-return]

    def create_transactions(
        self,
        budget_id: str,
        transactions: list[Transaction],
        account_id: str,
        cleared: Cleared = "cleared",
        approved: bool = False,
    ) -> UploadResult:
        """Upload transactions to one YNAB account.

        Args:
            budget_id: Target budget
            transactions: Transactions from one statement
            account_id: Target account within the budget
            cleared: Cleared status for every transaction
            approved: Whether transactions skip YNAB's approval queue

        Returns:
            UploadResult with counts of uploaded, skipped, and errors

        Raises:
            LedgerError: If no transaction passes validation
            AuthenticationError: If the token cannot be refreshed
        """
        payloads = [
            transaction_to_payload(tx, account_id, cleared=cleared, approved=approved)
            for tx in transactions
        ]
        valid = [payload for payload in payloads if is_valid_payload(payload)]
        if not valid:
            raise LedgerError("No valid transactions to create")

        uploaded = 0
        skipped = len(payloads) - len(valid)
        errors: list[str] = []

        for i in range(0, len(valid), self.MAX_BATCH_SIZE):
            batch = valid[i : i + self.MAX_BATCH_SIZE]
            batch_number = i // self.MAX_BATCH_SIZE + 1

            try:
                result = self._request(
                    "POST",
                    f"budgets/{budget_id}/transactions",
                    json={"transactions": batch},
                )
            except AuthenticationError:
                raise
            except (LedgerError, requests.RequestException) as e:
                errors.append(f"Batch {batch_number}: {e}")
                continue

            data = result.get("data", {})
            created = len(data.get("transaction_ids", []))
            duplicates = len(data.get("duplicate_import_ids", []))
            uploaded += created
            skipped += duplicates

        return UploadResult(uploaded=uploaded, skipped=skipped, errors=errors)
