"""Tests for the main normalizer class."""

import asyncio
import csv
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import patch

from ilbank_sync import StatementFile, StatementNormalizer, Transaction
from ilbank_sync.parsers import PoalimParser
from ilbank_sync.storage import IdentifierAccountMap, MemoryStore
from ilbank_sync.utils.reading import TextContent, Workbook

from conftest import POALIM_CSV

CAL_FILE = "פירוט חיובים לכרטיס 4580.xlsx"
POALIM_FILE = "shekel123456789.csv"

XlsxBuilder = Callable[[dict[str, list[list[Any]]]], bytes]


def run(normalizer: StatementNormalizer, files: list[StatementFile]) -> list[Any]:
    """Drive the async batch from a synchronous test."""
    return asyncio.run(normalizer.analyze_files(files))


class TestLoadContent:
    """Tests for content branching by extension."""

    def test_csv_is_text(self) -> None:
        """Test .csv files are read as delimited text."""
        content = StatementNormalizer.load_content(POALIM_FILE, POALIM_CSV.encode("utf-8"))
        assert isinstance(content, TextContent)
        assert len(content.records) == 2

    def test_xlsx_is_workbook(self, xlsx_bytes: XlsxBuilder) -> None:
        """Test spreadsheet extensions are read as workbooks, case-insensitively."""
        content = StatementNormalizer.load_content("A.XLSX", xlsx_bytes({"S": [["x"]]}))
        assert isinstance(content, Workbook)

    def test_other_extensions_unsupported(self) -> None:
        """Test anything else is not read at all."""
        assert StatementNormalizer.load_content("notes.txt", b"hello") is None


class TestStatementNormalizer:
    """Tests for StatementNormalizer class."""

    def test_analyze_spreadsheet(self, xlsx_bytes: XlsxBuilder, cal_rows: list[list[Any]]) -> None:
        """Test a card statement read from real .xlsx bytes."""
        data = xlsx_bytes({"Sheet1": cal_rows})
        result = StatementNormalizer().analyze_content(CAL_FILE, data)

        assert result.error is None
        assert result.vendor_info is not None
        assert result.vendor_info.name == "Cal"
        assert result.identifier == "4580"
        assert result.transactions[0] == Transaction(
            date="2025-04-15",
            amount=-100500,
            payee_name="סופרמרקט",
            memo="קניות מזון",
        )
        assert result.final_balance == 5259.19

    def test_analyze_csv(self) -> None:
        """Test a bank CSV."""
        result = StatementNormalizer().analyze_content(POALIM_FILE, POALIM_CSV.encode("utf-8"))

        assert result.vendor_info is not None
        assert result.vendor_info.name == "Bank Hapoalim"
        assert result.identifier == "123456789"
        assert [tx.amount for tx in result.transactions] == [5000000, -200000]
        assert result.final_balance == 14800.0

    def test_analyze_cp1255_csv(self) -> None:
        """Test a CSV saved in the Hebrew Windows code page."""
        result = StatementNormalizer().analyze_content(POALIM_FILE, POALIM_CSV.encode("cp1255"))
        assert result.identifier == "123456789"
        assert len(result.transactions) == 2

    def test_unrecognized_is_not_error(self, xlsx_bytes: XlsxBuilder) -> None:
        """Test an unknown spreadsheet gives an empty result without an error."""
        result = StatementNormalizer().analyze_content("budget.xlsx", xlsx_bytes({"S": [["x"]]}))

        assert result.recognized is False
        assert result.error is None
        assert result.transactions == []
        assert result.identifier is None

    def test_account_preselected(self) -> None:
        """Test a remembered identifier fills in the target account."""
        accounts = IdentifierAccountMap(MemoryStore())
        accounts.remember("123456789", "acc-1")
        normalizer = StatementNormalizer(account_map=accounts)

        result = normalizer.analyze_content(POALIM_FILE, POALIM_CSV.encode("utf-8"))

        assert result.account_id == "acc-1"

    def test_disguised_file_is_error(self) -> None:
        """Test a text file named like a spreadsheet becomes an error result."""
        files = [StatementFile("statement.xlsx", data=b"this is not a spreadsheet")]
        results = run(StatementNormalizer(), files)

        assert len(results) == 1
        assert results[0].to_dict() == {
            "fileName": "statement.xlsx",
            "vendorInfo": None,
            "identifier": None,
            "transactions": [],
            "finalBalance": None,
            "error": results[0].error,
        }
        assert "Could not read Excel file" in results[0].error

    def test_batch_isolation_and_order(
        self, xlsx_bytes: XlsxBuilder, cal_rows: list[list[Any]], tmp_path: Path
    ) -> None:
        """Test failures stay local and results keep input order."""
        files = [
            StatementFile("broken.xlsx", data=b"garbage"),
            StatementFile(POALIM_FILE, data=POALIM_CSV.encode("utf-8")),
            StatementFile.from_path(tmp_path / "missing.csv"),
            StatementFile(CAL_FILE, data=xlsx_bytes({"Sheet1": cal_rows})),
            StatementFile("notes.txt", data=b"hello"),
        ]
        results = run(StatementNormalizer(), files)

        assert [r.file_name for r in results] == [
            "broken.xlsx",
            POALIM_FILE,
            "missing.csv",
            CAL_FILE,
            "notes.txt",
        ]
        assert results[0].error is not None
        assert results[1].error is None and len(results[1].transactions) == 2
        assert results[2].error is not None
        assert results[3].error is None and results[3].identifier == "4580"
        assert results[4].error is None and results[4].vendor_info is None

    def test_analyzer_exception_caught(self) -> None:
        """Test an unexpected analyzer failure is reported, not raised."""
        files = [
            StatementFile(POALIM_FILE, data=POALIM_CSV.encode("utf-8")),
            StatementFile(CAL_FILE, data=b"unused"),
        ]
        with patch.object(PoalimParser, "extract", side_effect=RuntimeError()):
            results = run(StatementNormalizer(), files)

        assert results[0].error == "RuntimeError"
        assert results[0].transactions == []
        assert results[1].error is not None

    def test_read_from_disk(self, tmp_path: Path) -> None:
        """Test files given by path are read lazily."""
        path = tmp_path / POALIM_FILE
        path.write_bytes(POALIM_CSV.encode("utf-8"))

        results = run(StatementNormalizer(), [StatementFile.from_path(path)])

        assert results[0].file_name == POALIM_FILE
        assert results[0].identifier == "123456789"

    def test_find_statement_files(self, tmp_path: Path) -> None:
        """Test only supported extensions are listed, sorted."""
        for name in ("b.XLSX", "a.csv", "c.txt", "d.xls"):
            (tmp_path / name).write_bytes(b"")
        (tmp_path / "sub.csv").mkdir()

        found = StatementNormalizer.find_statement_files(tmp_path)

        assert [p.name for p in found] == ["a.csv", "b.XLSX", "d.xls"]

    def test_write_csv(self, tmp_path: Path) -> None:
        """Test writing recognized transactions to CSV."""
        normalizer = StatementNormalizer()
        results = run(normalizer, [
            StatementFile(POALIM_FILE, data=POALIM_CSV.encode("utf-8")),
            StatementFile("notes.txt", data=b"hello"),
        ])
        output = tmp_path / "out.csv"

        count = normalizer.write_csv(results, output)

        assert count == 2
        with open(output, encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["Date", "Payee", "Memo", "Amount", "Vendor", "Identifier"]
        assert rows[1] == ["2025-04-01", "משכורת", "חברה בעמ", "5000000", "Bank Hapoalim", "123456789"]

    def test_write_tsv(self, tmp_path: Path) -> None:
        """Test writing with a tab delimiter."""
        normalizer = StatementNormalizer()
        results = run(normalizer, [StatementFile(POALIM_FILE, data=POALIM_CSV.encode("utf-8"))])
        output = tmp_path / "out.tsv"

        normalizer.write_csv(results, output, delimiter="\t")

        assert output.read_text(encoding="utf-8").splitlines()[0] == (
            "Date\tPayee\tMemo\tAmount\tVendor\tIdentifier"
        )
