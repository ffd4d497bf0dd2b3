"""Exceptions raised while reading statements and talking to the ledger."""


class StatementError(Exception):
    """Base class for statement processing errors."""


class StatementFormatError(StatementError, ValueError):
    """Raised when a file cannot be read as the format it claims to be."""


class UnsupportedContentError(StatementFormatError):
    """Raised when an analyzer is handed content of the wrong kind.

    For example, delimited text passed to a vendor whose exports are
    always spreadsheets.
    """


class LedgerError(Exception):
    """Raised when the YNAB API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(LedgerError):
    """Raised when the YNAB API keeps refusing the access token."""


class ConfigError(ValueError):
    """Raised when a config or state file exists but cannot be used."""
