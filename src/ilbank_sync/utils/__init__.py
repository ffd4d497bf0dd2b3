"""Utility functions for ilbank-sync."""

from ilbank_sync.utils.parsing import (
    Rounding,
    cell_text,
    normalize_date,
    parse_localized_number,
    to_milliunits,
)
from ilbank_sync.utils.reading import (
    Sheet,
    TextContent,
    Workbook,
    decode_text,
    read_delimited,
    read_workbook,
)

__all__ = [
    "Rounding",
    "cell_text",
    "normalize_date",
    "parse_localized_number",
    "to_milliunits",
    "Sheet",
    "TextContent",
    "Workbook",
    "decode_text",
    "read_delimited",
    "read_workbook",
]
