"""Parsing utilities for statement cells and amounts."""

import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

# A digit followed by digits/thousands separators, with an optional fraction
_NUMBER_RUN = re.compile(r"\d[\d,]*(?:\.\d+)?")
_FLOAT_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class Rounding(Enum):
    """How a vendor turns a scaled amount into whole milliunits.

    Each institution rounds differently, and the statement balance only
    reconciles when its own rule is kept.
    """

    FLOOR = "floor"  # toward negative infinity
    HALF_AWAY = "half_away"  # toFixed(0): halves away from zero, exact binary value
    CENTS_TRUNCATE = "cents_truncate"  # toFixed(2), then dropped to an integer
    HALF_UP = "half_up"  # Math.round: halves toward positive infinity


def parse_float(text: str) -> float | None:
    """
    Parse the leading numeric prefix of a string.

    Trailing garbage is ignored ("12abc" -> 12.0), leading garbage is not.

    Args:
        text: String to parse

    Returns:
        float if a numeric prefix exists, None otherwise
    """
    match = _FLOAT_PREFIX.match(text.strip())
    if not match:
        return None
    return float(match.group(0))


def js_number(value: Any) -> float | None:
    """
    Convert a cell value to a number the way a strict numeric cast does.

    Blank values become 0, unparseable text becomes None.

    Args:
        value: Raw cell value

    Returns:
        float, or None if the value is not numeric
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)

    text = str(value).strip()
    if not text:
        return 0.0
    try:
        number = float(text)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def parse_localized_number(value: Any) -> float | None:
    """
    Extract a number from localized currency text.

    Picks the longest run of digits, thousands separators and decimal
    point, so a date or a lone digit earlier in the string loses to the
    actual amount:

        "Charges as of 02/05/2025: 5,259.19 ₪" -> 5259.19

    Args:
        value: Cell value (numbers are returned as-is)

    Returns:
        float if a number was found, None otherwise
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)

    best = ""
    for match in _NUMBER_RUN.finditer(str(value)):
        if len(match.group(0)) > len(best):
            best = match.group(0)
    if not best:
        return None
    return float(best.replace(",", ""))


def normalize_date(value: Any, separator: str = "/") -> str:
    """
    Normalize a day-first date to ISO format.

    Supported formats:
    - DD/MM/YY (15/04/25)
    - DD/MM/YYYY (15/04/2025)
    - DD-MM-YYYY (15-04-2025), with separator="-"

    Anything that does not split into three parts is returned unchanged.

    Args:
        value: Date cell value
        separator: Separator used by the vendor

    Returns:
        YYYY-MM-DD string, or the input as text
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return cell_text(value)

    text = value.strip()
    parts = text.split(separator)
    if separator not in text or len(parts) != 3:
        return value

    day, month, year = (part.strip() for part in parts)
    if len(year) == 2:
        year = f"20{year}"
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def to_milliunits(value: float, rounding: Rounding, negate: bool = False) -> int:
    """
    Scale a currency amount to milliunits.

    Args:
        value: Amount in shekels
        rounding: Vendor rounding rule
        negate: Flip the sign (card charges are listed as positive numbers)

    Returns:
        Signed integer milliunits
    """
    scaled = value * (-1000 if negate else 1000)

    if rounding is Rounding.FLOOR:
        return math.floor(scaled)
    if rounding is Rounding.HALF_UP:
        return math.floor(scaled + 0.5)
    if rounding is Rounding.HALF_AWAY:
        return int(Decimal(scaled).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if rounding is Rounding.CENTS_TRUNCATE:
        return int(Decimal(scaled).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    raise ValueError(f"Unknown rounding rule: {rounding}")


def cell_text(value: Any) -> str:
    """
    Render a cell value as text.

    Whole floats lose their ".0" so identifiers read back as typed.

    Args:
        value: Raw cell value

    Returns:
        Text, empty for None
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_blank(value: Any) -> bool:
    """Return True for the values a mapping may overwrite (None, "", 0)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (int, float)):
        return value == 0
    return False


def collapse_whitespace(text: str) -> str:
    """Join multi-line header text into one line."""
    return " ".join(text.split())
