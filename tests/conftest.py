"""Pytest configuration and fixtures."""

import io
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import openpyxl
import pytest

from ilbank_sync.utils.reading import Sheet, TextContent, Workbook, read_delimited

Rows = list[list[Any]]

POALIM_CSV = (
    "תאריך,תיאור הפעולה,פרטים,חשבון,אסמכתא,תאריך ערך,חובה,זכות,יתרה לאחר פעולה,\n"
    "01/04/2025,משכורת,חברה בעמ,,123,01/04/2025,,5000,15000,\n"
    "02/04/2025,כרטיס אשראי,ישראכרט,,124,02/04/2025,200,,14800,\n"
)

MIZRAHI_HTML = "\n".join([
    "<html><body>",
    "<h1>יתרה ותנועות בחשבון</h1>",
    "<table><tr><td>יתרה בחשבון:</td><td>4,699.50</td></tr></table>",
    "<table>",
    "<tr><td  style=background-color: #808080><b>תאריך</b></td>"
    "<td  style=background-color: #808080><b>תאריך ערך</b></td>"
    "<td  style=background-color: #808080><b>סוג תנועה</b></td>"
    "<td  style=background-color: #808080><b>זכות</b></td>"
    "<td  style=background-color: #808080><b>חובה</b></td>"
    "<td  style=background-color: #808080><b>יתרה בשח</b></td>"
    "<td  style=background-color: #808080><b>אסמכתא</b></td></tr>",
    "<tr><td>01/04/25</td><td>01/04/25</td><td>העברה</td>"
    "<td>1,000.00</td><td>&nbsp;</td><td>5,000.00</td><td>111</td></tr>",
    "<tr><td>02/04/25</td><td>02/04/25</td><td>משיכה</td>"
    "<td>&nbsp;</td><td>300.50</td><td>4,699.50</td><td>112</td></tr>",
    "</table>",
    "</body></html>",
])


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep config lookups and tokens away from the real user environment."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in ("YNAB_ACCESS_TOKEN", "YNAB_CLIENT_ID", "YNAB_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def make_xlsx(sheets: dict[str, Rows]) -> bytes:
    """Build real .xlsx bytes, one worksheet per entry."""
    book = openpyxl.Workbook()
    book.remove(book.active)
    for title, rows in sheets.items():
        ws = book.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    book.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def xlsx_bytes() -> Callable[[dict[str, Rows]], bytes]:
    """Return the .xlsx builder."""
    return make_xlsx


@pytest.fixture
def cal_rows() -> Rows:
    """Return rows of a Cal export."""
    return [
        ["4580"],
        ["כרטיס ויזה"],
        ["עסקאות לחיוב ב-02/05/2025: 5,259.19 ₪"],
        [],
        ["תאריך\nעסקה", "שם בית עסק", "סכום חיוב", "הערות"],
        ["15/04/25", "סופרמרקט", "100.50", "קניות מזון"],
        ["16/04/25", "חנות", "לא מספר", ""],
        ["17/04/25", "ביטול עסקה", None, "זיכוי"],
        [],
        ["הערה בתחתית הדף"],
    ]


@pytest.fixture
def cal_workbook(cal_rows: Rows) -> Workbook:
    """Return a Cal export as a Workbook."""
    return Workbook([Sheet("Sheet1", cal_rows)])


@pytest.fixture
def isracard_rows() -> Rows:
    """Return rows of an Isracard export with domestic and foreign blocks."""
    return [
        ["ישראכרט"],
        [],
        [],
        ["1234"],
        [],
        ["תאריך רכישה", "שם בית עסק", "סכום עסקה", "מטבע", "סכום חיוב", "פירוט נוסף"],
        ["01/04/25", "שופרסל", 120.5, "₪", 120.5, "הוראת קבע"],
        ["02/04/25", "פז", 50, "₪", 50, ""],
        ['סך חיוב בש"ח:', None, None, None, 245.5],
        ['עסקאות בחו"ל'],
        ["תאריך רכישה", "תאריך חיוב", "שם בית עסק", "סכום מקור", "מטבע מקור", "סכום חיוב"],
        ["03/04/25", "10/05/25", "AMAZON", 20, "USD", 75],
        [None, None, "TOTAL FOR DATE", None, None, 75],
        [],
        ["04/04/25", "10/05/25", "NETFLIX", 10, "USD", "oops"],
        ["05/04/25", "10/05/25", "SPOTIFY", 5, "USD", 0.0625],
        ["סך הכל", None, None, None, None, 112.5],
        ["06/04/25", "10/05/25", "AFTER END", 1, "USD", 3],
    ]


@pytest.fixture
def isracard_workbook(isracard_rows: Rows) -> Workbook:
    """Return an Isracard export as a Workbook."""
    return Workbook([Sheet("Sheet1", isracard_rows)])


@pytest.fixture
def max_workbook() -> Workbook:
    """Return a Max export with two tabs."""
    first = Sheet("כרטיס 1", [
        ["מקס"],
        ["5678"],
        [],
        ["תאריך עסקה", "שם בית העסק", "סכום חיוב", "הערות"],
        ["15-04-2025", "קפה", 0.0625, "הערה"],
        ["16-04-2025", "מסעדה", None, ""],
        ["17-04-2025", "ספרים", "₪ 1,234.50"],
        [],
        ["סך הכל"],
        ["₪ 1,234.50"],
    ])
    second = Sheet("כרטיס 2", [
        ["תאריך עסקה", "שם בית העסק", "סכום חיוב"],
        ["01-05-2025", "דלק", "100"],
        [],
        [None, None, 'סה"כ 100.00 ₪'],
    ])
    return Workbook([first, second])


@pytest.fixture
def mizrahi_workbook() -> Workbook:
    """Return a two-sheet Mizrahi Tfahot export."""
    summary = Sheet("פרטי חשבון", [
        ["יתרה ותנועות בחשבון"],
        [],
        ["מספר חשבון:", "123-456789"],
    ])
    movements = Sheet("תנועות", [
        [None, "2,500.75 ₪"],
        [],
        ["תאריך", "סוג תנועה", "זכות", "חובה", "אסמכתא"],
        ["01/04/25", "העברה", 1000, None, 555],
        ["02/04/25", "משיכה", None, 250.5, 556],
        ["03/04/25", "תיקון", 10, 20, 557],
        ["", "סיכום", None, 270.5],
    ])
    return Workbook([summary, movements])


@pytest.fixture
def mizrahi_html_workbook() -> Workbook:
    """Return a Mizrahi Tfahot HTML export as read from an .xls file."""
    return Workbook([Sheet("Sheet1", [[MIZRAHI_HTML]])])


@pytest.fixture
def discount_rows() -> Rows:
    """Return rows of a Discount export."""
    return [
        ["עובר ושב"],
        ["123-4567"],
        [],
        [],
        [],
        [],
        [],
        ["תאריך", "תאריך ערך", "תיאור התנועה", "₪ זכות/חובה", "₪ יתרה", "אסמכתה"],
        [datetime(2025, 4, 15), datetime(2025, 4, 15), "משכורת", 8000, 12000.5, "901"],
        [45762, None, "חשמל", -350.25, 11650.25, 902],
        ["4/16/25", None, "העברה", "", None, None],
        [None, None, "סיכום"],
    ]


@pytest.fixture
def discount_workbook(discount_rows: Rows) -> Workbook:
    """Return a Discount export as a Workbook."""
    return Workbook([Sheet("Sheet1", discount_rows)])


@pytest.fixture
def poalim_content() -> TextContent:
    """Return a Bank Hapoalim CSV export as parsed text."""
    return read_delimited(POALIM_CSV)
