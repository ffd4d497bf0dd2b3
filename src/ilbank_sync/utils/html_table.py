"""Regex-based reader for bank statements saved as an HTML table.

Some exports are an HTML page stored in a single spreadsheet cell. Only
the narrow shape those pages use is supported: HTML text in, a list of
row dicts out.
"""

import logging
import re
from typing import Any

from ilbank_sync.utils.reading import Sheet

logger = logging.getLogger(__name__)

TABLE_MARKER = "<tr><td  style=background-color: #808080"

COLUMNS = ["תאריך", "תאריך ערך", "סוג תנועה", "זכות", "חובה", "יתרה בשח", "אסמכתא"]

_HEADER = re.compile(
    r".*?".join(rf"<td[^>]*><b>\s*{name}\s*</b></td>" for name in COLUMNS)
)
_ROW = re.compile(
    r"<tr>.*?<td[^>]*>\s*([\d/]+)\s*</td>"
    + r".*?<td[^>]*>(.*?)</td>" * 6
)
_BALANCE = re.compile(r"יתרה בחשבון:\s*</td><td[^>]*>\s*([\d,.]+)")
_ACCOUNT_NUMBER = re.compile(r"מספר חשבון:\s*(?:</td>\s*<td[^>]*>)?\s*(\d[\d-]*)")

# Columns whose cells may hold a bare &nbsp;
_NBSP_COLUMNS = {"תאריך ערך", "זכות", "חובה", "יתרה בשח"}


def find_embedded_html(sheet: Sheet) -> str:
    """
    Find the HTML page stored inside a worksheet.

    Args:
        sheet: Worksheet to search

    Returns:
        The HTML text, or "" if the sheet holds none
    """
    first = sheet.cell("A1")
    if first:
        return str(first)

    for value in sheet.iter_cells():
        text = str(value)
        if text.startswith("<html") or "<table" in text:
            return text
    return ""


def has_statement_table(html: str) -> bool:
    """Check whether the page contains the transactions table marker."""
    return TABLE_MARKER in html


def parse_statement_rows(html: str) -> list[dict[str, Any]]:
    """
    Extract transaction rows from the statement table.

    Header and summary rows are skipped: a row only counts when its
    date cell contains a slash and its type is not a charge total.

    Args:
        html: Page content

    Returns:
        List of dicts keyed by the Hebrew column names
    """
    start = html.find(TABLE_MARKER)
    if start == -1:
        return []

    section = html[start:]
    if not _HEADER.search(section):
        logger.debug("Statement table marker found but header row missing")
        return []

    rows: list[dict[str, Any]] = []
    for match in _ROW.finditer(section):
        cells = match.groups()
        date_cell = cells[0]
        if (
            "תאריך" in date_cell
            or "סך חיוב" in cells[2]
            or not date_cell.strip()
            or "/" not in date_cell
        ):
            continue

        row: dict[str, Any] = {}
        for name, raw in zip(COLUMNS, cells):
            value = raw.replace("&nbsp;", "") if name in _NBSP_COLUMNS else raw
            row[name] = value.strip()
        rows.append(row)

    logger.debug("Parsed %d rows from HTML statement table", len(rows))
    return rows


def extract_html_balance(html: str) -> float | None:
    """
    Read the account balance printed beside the statement table.

    Args:
        html: Page content

    Returns:
        Balance as a float, or None if the label is missing
    """
    match = _BALANCE.search(html)
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def extract_html_account_number(html: str) -> str | None:
    """Read the account number printed after the "מספר חשבון:" label."""
    match = _ACCOUNT_NUMBER.search(html)
    return match.group(1) if match else None
