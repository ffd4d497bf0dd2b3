"""Statement parsers package."""

from ilbank_sync.parsers.base import BankParser, ParserRegistry, Vendor
from ilbank_sync.parsers.cal import CalParser
from ilbank_sync.parsers.discount import DiscountParser
from ilbank_sync.parsers.isracard import IsracardParser
from ilbank_sync.parsers.max import MaxParser
from ilbank_sync.parsers.mizrahi import MizrahiTfahotParser
from ilbank_sync.parsers.poalim import PoalimParser

__all__ = [
    "BankParser",
    "ParserRegistry",
    "Vendor",
    "CalParser",
    "IsracardParser",
    "MaxParser",
    "MizrahiTfahotParser",
    "PoalimParser",
    "DiscountParser",
]
