"""Spreadsheet adapters for bulk user uploads.

Both adapters validate the header row against the bulk user contract, skip
blank rows, and yield dictionaries keyed by canonical field names so the
result can go straight through payload validation.
"""

from __future__ import annotations

import csv
import io
import zipfile
from dataclasses import dataclass
from typing import IO, Iterator, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .contracts import get_alias_map, get_field_specs, get_required_headers, normalize_header


class SpreadsheetAdapterError(Exception):
    """Base exception for spreadsheet adapter failures."""


class SpreadsheetHeaderError(SpreadsheetAdapterError):
    """Raised when the header row does not meet contract requirements."""

    def __init__(self, *, missing: Sequence[str] | None = None, duplicates: Sequence[str] | None = None) -> None:
        details: list[str] = []
        if missing:
            details.append(f"Missing required columns: {', '.join(sorted(missing))}.")
        if duplicates:
            details.append(
                "Duplicate columns detected: " + ", ".join(sorted(duplicates)) + ". Each column may appear only once."
            )
        message = "Header validation failed. " + " ".join(details) if details else "Header validation failed."
        super().__init__(message)
        self.missing = tuple(missing or ())
        self.duplicates = tuple(duplicates or ())


class UnsupportedFileError(SpreadsheetAdapterError):
    """Raised for uploads that are neither CSV nor XLSX."""


@dataclass(frozen=True)
class SheetRow:
    source_line: int
    values: dict[str, str | None]


@dataclass
class SheetStatistics:
    rows_processed: int = 0
    rows_skipped_blank: int = 0


def _cell_text(value: object | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _map_headers(raw_headers: Sequence[object | None]) -> list[str | None]:
    """Return the canonical field for each column position; unknown columns map to None."""

    alias_map = get_alias_map()
    seen: set[str] = set()
    duplicates: list[str] = []
    columns: list[str | None] = []
    for header in raw_headers:
        canonical = alias_map.get(normalize_header(str(header) if header is not None else ""))
        if canonical is not None:
            if canonical in seen:
                duplicates.append(canonical)
            seen.add(canonical)
        columns.append(canonical)

    missing = sorted(set(get_required_headers()) - seen)
    if missing or duplicates:
        raise SpreadsheetHeaderError(missing=missing, duplicates=duplicates)
    return columns


class _SheetAdapter:
    def __init__(self, *, skip_blank_rows: bool = True) -> None:
        self.skip_blank_rows = skip_blank_rows
        self.statistics = SheetStatistics()
        self._field_names = tuple(spec.name for spec in get_field_specs())

    def _raw_rows(self) -> Iterator[Sequence[object | None]]:
        raise NotImplementedError

    def iter_rows(self) -> Iterator[SheetRow]:
        raw_rows = self._raw_rows()
        header = next(raw_rows, None)
        if header is None:
            raise SpreadsheetHeaderError(missing=get_required_headers())
        columns = _map_headers(header)

        for line_number, raw in enumerate(raw_rows, start=2):
            values: dict[str, str | None] = {name: None for name in self._field_names}
            for canonical, cell in zip(columns, raw):
                if canonical is not None:
                    values[canonical] = _cell_text(cell)

            if self.skip_blank_rows and all(value is None for value in values.values()):
                self.statistics.rows_skipped_blank += 1
                continue

            self.statistics.rows_processed += 1
            yield SheetRow(source_line=line_number, values=values)

    def read_users(self) -> list[dict[str, str | None]]:
        """Return every non-blank row as a ``users`` payload entry."""

        return [row.values for row in self.iter_rows()]


class BulkUserCSVAdapter(_SheetAdapter):
    """CSV reader enforcing the bulk user contract."""

    def __init__(self, file_obj: IO[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self._file_obj = file_obj

    def _raw_rows(self) -> Iterator[Sequence[object | None]]:
        self._file_obj.seek(0)
        yield from csv.reader(self._file_obj)


class BulkUserXLSXAdapter(_SheetAdapter):
    """Reads the first worksheet of an ``.xlsx`` workbook; row 1 is the header."""

    def __init__(self, file_obj: IO[bytes], **kwargs) -> None:
        super().__init__(**kwargs)
        self._file_obj = file_obj

    def _raw_rows(self) -> Iterator[Sequence[object | None]]:
        try:
            workbook = load_workbook(self._file_obj, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
            raise UnsupportedFileError(f"Could not read workbook: {exc}") from exc
        try:
            worksheet = workbook.worksheets[0]
            yield from worksheet.iter_rows(values_only=True)
        finally:
            workbook.close()


def adapter_for_upload(filename: str, content: bytes) -> _SheetAdapter:
    """Pick an adapter from the upload's file extension."""

    lowered = (filename or "").lower()
    if lowered.endswith(".csv"):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise UnsupportedFileError("CSV files must be UTF-8 encoded") from exc
        return BulkUserCSVAdapter(io.StringIO(text, newline=""))
    if lowered.endswith(".xlsx"):
        return BulkUserXLSXAdapter(io.BytesIO(content))
    raise UnsupportedFileError("Unsupported file type; upload a .csv or .xlsx file")


def read_users_from_upload(filename: str, content: bytes) -> list[dict[str, str | None]]:
    return adapter_for_upload(filename, content).read_users()
