"""Main normalizer class that orchestrates statement analysis."""

import asyncio
import csv
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from ilbank_sync.models import FileAnalysis
from ilbank_sync.parsers import BankParser, ParserRegistry
from ilbank_sync.parsers.base import Content
from ilbank_sync.storage import IdentifierAccountMap
from ilbank_sync.utils.reading import decode_text, read_delimited, read_workbook

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".csv",)
SPREADSHEET_EXTENSIONS = (".xls", ".xlsx", ".xlsm")
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS + SPREADSHEET_EXTENSIONS


@dataclass
class StatementFile:
    """An uploaded file: its name plus either its bytes or a path to read."""

    name: str
    data: bytes | None = None
    path: Path | None = None

    @classmethod
    def from_path(cls, path: Path) -> "StatementFile":
        """Create a StatementFile that is read lazily from disk."""
        return cls(name=path.name, path=path)

    def read_bytes(self) -> bytes:
        """Read the file content."""
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"No content or path for {self.name}")
        return self.path.read_bytes()

    async def read(self) -> bytes:
        """Read the file content without blocking the event loop."""
        if self.data is not None:
            return self.data
        return await asyncio.to_thread(self.read_bytes)


class StatementNormalizer:
    """
    Main class for normalizing bank and credit card statements.

    Usage:
        normalizer = StatementNormalizer()
        files = [StatementFile.from_path(Path("shekel123456789.csv"))]
        results = asyncio.run(normalizer.analyze_files(files))
        normalizer.write_csv(results, Path("output.csv"))
    """

    def __init__(self, account_map: IdentifierAccountMap | None = None) -> None:
        """
        Initialize normalizer.

        Args:
            account_map: Remembered identifier -> account choices, used to
                pre-select the target account of each recognized file
        """
        self.account_map = account_map

    @staticmethod
    def load_content(file_name: str, data: bytes) -> Content | None:
        """
        Read file bytes according to the file extension.

        Args:
            file_name: Name of the statement file
            data: Raw file content

        Returns:
            TextContent for .csv, Workbook for spreadsheets, None otherwise

        Raises:
            StatementFormatError: If the content cannot be read
        """
        suffix = Path(file_name).suffix.lower()
        if suffix in TEXT_EXTENSIONS:
            return read_delimited(decode_text(data, file_name))
        if suffix in SPREADSHEET_EXTENSIONS:
            return read_workbook(data, file_name)
        return None

    @staticmethod
    def detect_vendor(
        file_name: str,
        content: Content,
    ) -> tuple[type[BankParser] | None, str | None]:
        """Find the parser for a file; (None, None) if unrecognized."""
        return ParserRegistry.detect_vendor(file_name, content)

    def analyze_content(self, file_name: str, data: bytes) -> FileAnalysis:
        """
        Analyze one file's bytes.

        Args:
            file_name: Name of the statement file
            data: Raw file content

        Returns:
            FileAnalysis (vendor_info is None when the format is unrecognized)
        """
        content = self.load_content(file_name, data)
        if content is None:
            logger.info("Skipping %s: unsupported file type", file_name)
            return FileAnalysis(file_name=file_name)

        parser_class, identifier = self.detect_vendor(file_name, content)
        if parser_class is None:
            logger.info("No vendor recognized for %s", file_name)
            return FileAnalysis(file_name=file_name)

        logger.info("Detected %s (%s) in %s", parser_class.vendor.value, identifier, file_name)
        result = parser_class().extract(content, file_name)

        account_id = self.account_map.get(identifier) if self.account_map else None
        return FileAnalysis(
            file_name=file_name,
            vendor_info=parser_class.vendor_info(),
            identifier=identifier,
            transactions=result.transactions,
            final_balance=result.final_balance,
            balances_by_tab=result.balances_by_tab,
            account_id=account_id,
        )

    async def analyze_file(self, file: StatementFile) -> FileAnalysis:
        """
        Analyze one file, converting any failure into an error result.

        Args:
            file: File to analyze

        Returns:
            FileAnalysis; on failure only file_name and error are set
        """
        try:
            data = await file.read()
            return self.analyze_content(file.name, data)
        except Exception as e:
            logger.warning("Failed to analyze %s: %s", file.name, e)
            return FileAnalysis(file_name=file.name, error=str(e) or type(e).__name__)

    async def analyze_files(self, files: Iterable[StatementFile]) -> list[FileAnalysis]:
        """
        Analyze files concurrently.

        Args:
            files: Files to analyze

        Returns:
            One FileAnalysis per file, in input order
        """
        return list(await asyncio.gather(*(self.analyze_file(file) for file in files)))

    @staticmethod
    def find_statement_files(directory: Path) -> list[Path]:
        """
        List supported statement files in a directory.

        Args:
            directory: Directory path

        Returns:
            Sorted list of matching files
        """
        return sorted(
            path
            for path in directory.iterdir()
            if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
        )

    @staticmethod
    def write_csv(
        results: list[FileAnalysis],
        output_path: Path,
        delimiter: str = ",",
    ) -> int:
        """
        Write the transactions of all recognized files to a CSV file.

        Args:
            results: Analysis results
            output_path: Output file path
            delimiter: CSV delimiter (default comma)

        Returns:
            Number of transactions written
        """
        count = 0
        with open(output_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, delimiter=delimiter)
            writer.writerow(["Date", "Payee", "Memo", "Amount", "Vendor", "Identifier"])
            for result in results:
                if result.vendor_info is None:
                    continue
                for tx in result.transactions:
                    writer.writerow([
                        tx.date,
                        tx.payee_name,
                        tx.memo,
                        tx.amount,
                        result.vendor_info.name,
                        result.identifier or "",
                    ])
                    count += 1
        return count
