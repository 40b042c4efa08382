# ladder/tabular.py

import csv
import io
import logging
import zipfile
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ladder.errors import MalformedFileError

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]

ZIP_MAGIC = b"PK\x03\x04"


class TabularParser:
    """
    Read the first sheet of an uploaded spreadsheet into raw rows.

    Handles the two export formats the league admins use:
    - .xlsx workbooks (first worksheet only)
    - .csv files (UTF-8, optional BOM)

    The first row is the header row. Column labels are kept exactly as they
    appear in the sheet; cell values are not coerced.
    """

    def __init__(self):
        self.workbook_extensions = ('.xlsx', '.xlsm')
        self.csv_extensions = ('.csv',)

    def parse(self, data: bytes, filename: str = "") -> List[RawRow]:
        """
        Parse uploaded file bytes into an ordered list of raw rows.

        Args:
            data: Raw file content
            filename: Original file name, used to pick the format

        Returns:
            One mapping per data row, header label -> cell value. Every
            header is present in every row; empty cells are None.

        Raises:
            MalformedFileError: If the content cannot be read as a sheet
        """
        kind = self._detect_format(data, filename)
        if kind == 'workbook':
            table = self._read_workbook(data)
        else:
            table = self._read_csv(data)

        rows = self._rows_from_table(table)
        logger.info("Parsed %d rows from %s", len(rows), filename or "upload")
        return rows

    def _detect_format(self, data: bytes, filename: str) -> str:
        name = (filename or "").strip().lower()
        if name.endswith(self.workbook_extensions):
            return 'workbook'
        if name.endswith(self.csv_extensions):
            return 'csv'
        return 'workbook' if data[:4] == ZIP_MAGIC else 'csv'

    @staticmethod
    def _read_workbook(data: bytes) -> List[Sequence[Any]]:
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError, SyntaxError) as e:
            raise MalformedFileError(f"Could not read workbook: {e}") from e

        try:
            if not workbook.worksheets:
                raise MalformedFileError("Workbook has no sheets")
            sheet = workbook.worksheets[0]
            # Read-only sheets parse their XML lazily, here. Both the stdlib and
            # lxml parse errors are SyntaxError subclasses.
            return [tuple(row) for row in sheet.iter_rows(values_only=True)]
        except (SyntaxError, zipfile.BadZipFile, KeyError, ValueError, TypeError) as e:
            raise MalformedFileError(f"Could not read worksheet: {e}") from e
        finally:
            workbook.close()

    @staticmethod
    def _read_csv(data: bytes) -> List[Sequence[Any]]:
        try:
            text = data.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise MalformedFileError(f"File is not a UTF-8 CSV or an .xlsx workbook: {e}") from e
        if '\x00' in text:
            raise MalformedFileError("File contains binary data and is not a CSV sheet")

        try:
            return [row for row in csv.reader(io.StringIO(text, newline=''))]
        except csv.Error as e:
            raise MalformedFileError(f"Could not parse CSV: {e}") from e

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return value is None or (isinstance(value, str) and value.strip() == "")

    def _rows_from_table(self, table: List[Sequence[Any]]) -> List[RawRow]:
        if not table:
            return []

        headers: List[Optional[str]] = [
            None if self._is_blank(cell) else str(cell) for cell in table[0]
        ]

        rows: List[RawRow] = []
        for values in table[1:]:
            if all(self._is_blank(v) for v in values):
                continue
            row: RawRow = {}
            for idx, header in enumerate(headers):
                if header is None:
                    continue
                value = values[idx] if idx < len(values) else None
                # CSV has no empty cell, only empty strings.
                row[header] = None if value == "" else value
            rows.append(row)
        return rows
