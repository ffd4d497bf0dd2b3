"""ilbank-sync - Normalize Israeli bank statements for YNAB."""

from ilbank_sync.models import Transaction
from ilbank_sync.normalizer import StatementFile, StatementNormalizer
from ilbank_sync.ynab import YNABClient

__version__ = "0.1.0"
__all__ = ["StatementFile", "StatementNormalizer", "Transaction", "YNABClient"]
