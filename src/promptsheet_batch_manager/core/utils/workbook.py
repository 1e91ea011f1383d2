# -*- coding: utf-8 -*-

"""
Workbook storage: a folder holding one CSV file per sheet.

Every sheet is a header row plus data rows of text cells. Rows are
addressed by their sheet ordinal, the way a spreadsheet numbers them:
the header is row 1 and the first data row is row 2. Columns are
addressed by exact, case-sensitive header name and are only ever
appended, so existing column order never changes.
"""

import json
import logging
from enum import IntEnum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import polars as pl

from .misc import atomic_path, mask_path


DATA_SHEET = "Data"
PROMPTS_SHEET = "Prompts"
CONFIG_SHEET = "Config"
BATCH_STATUS_SHEET = "Batch Status"
ERROR_LOG_SHEET = "Error Log"
EXECUTION_LOG_SHEET = "Execution Log"
COST_SUMMARY_SHEET = "Cost Summary"

STATUS_COLUMN = "Status"
BATCH_ID_COLUMN = "Batch ID"
SYNC_BATCH_ID = "0"

HEADER_ROW = 1
FIRST_DATA_ROW = 2


class RowStatus(IntEnum):
    """Progress marker stored in the Data sheet Status column."""
    UNSET = 0
    SUBMITTED = 1
    DONE_SYNC = 1
    APPLIED = 2


def parse_status(value) -> int:
    """
    Read a Status cell. Empty means UNSET. Unreadable text is treated as
    SUBMITTED so the row is never picked up again.
    """
    if value is None:
        return RowStatus.UNSET
    text = str(value).strip()
    if not text:
        return RowStatus.UNSET
    try:
        return int(float(text))
    except ValueError:
        logging.warning(f"Unreadable status value '{text}', treating row as already submitted.")
        return RowStatus.SUBMITTED


def to_cell(value) -> str:
    """Coerce a Python value to the text stored in a cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def ensure_column(headers: List[str], name: str) -> Tuple[List[str], int]:
    """
    Return a header list containing `name` and the column index for it.
    The input list is never modified; a missing column is appended at the end.
    """
    if name in headers:
        return list(headers), headers.index(name)
    new_headers = list(headers) + [name]
    return new_headers, len(new_headers) - 1


class Sheet:
    """A single sheet of text cells backed by a CSV (or Parquet) file."""

    def __init__(self, name: str, path: Path, headers: List[str], rows: List[List[str]]):
        self.name = name
        self.path = Path(path)
        self._headers = list(headers)
        self._rows = [self._pad(list(row)) for row in rows]

    @classmethod
    def load(cls, name: str, path: str | Path, headers: Optional[Iterable[str]] = None) -> "Sheet":
        """
        Load a sheet from disk. A missing or empty file gives an empty
        sheet with the given default headers. Default headers missing from
        an existing file are appended.
        """
        path = Path(path)
        if path.exists() and path.stat().st_size > 0:
            df = _read_frame(path)
            sheet_headers = list(df.columns)
            rows = [
                ["" if value is None else str(value) for value in row]
                for row in df.iter_rows()
            ]
        else:
            sheet_headers, rows = [], []

        sheet = cls(name, path, sheet_headers, rows)
        for header in headers or []:
            sheet.ensure_column(header)
        return sheet

    def _pad(self, row: List[str]) -> List[str]:
        if len(row) < len(self._headers):
            row.extend([""] * (len(self._headers) - len(row)))
        return row

    #=========================================================
    # Columns
    #=========================================================

    @property
    def headers(self) -> List[str]:
        return list(self._headers)

    def column_index(self, column: str) -> Optional[int]:
        """Index of the column with exactly this header, or None."""
        try:
            return self._headers.index(column)
        except ValueError:
            return None

    def ensure_column(self, column: str) -> int:
        """Return the index of `column`, appending it with empty cells if absent."""
        self._headers, index = ensure_column(self._headers, column)
        for row in self._rows:
            self._pad(row)
        return index

    #=========================================================
    # Rows
    #=========================================================

    @property
    def n_rows(self) -> int:
        return len(self._rows)

    def ordinals(self) -> range:
        """Sheet ordinals of all data rows."""
        return range(FIRST_DATA_ROW, FIRST_DATA_ROW + len(self._rows))

    def has_row(self, row: int) -> bool:
        return FIRST_DATA_ROW <= row < FIRST_DATA_ROW + len(self._rows)

    def _row(self, row: int) -> List[str]:
        if not self.has_row(row):
            raise IndexError(f"Row {row} does not exist in sheet '{self.name}'.")
        return self._rows[row - FIRST_DATA_ROW]

    def get(self, row: int, column: str) -> str:
        """Cell text at (row, column). A missing column reads as empty."""
        index = self.column_index(column)
        if index is None:
            return ""
        return self._row(row)[index]

    def set(self, row: int, column: str, value) -> None:
        """Write one cell, creating the column when needed."""
        cells = self._row(row)
        index = self.ensure_column(column)
        cells[index] = to_cell(value)

    def row_dict(self, row: int) -> Dict[str, str]:
        """Mapping of header to cell text for one row."""
        return dict(zip(self._headers, self._row(row)))

    def append_row(self, record: Dict[str, object]) -> int:
        """Append a row from a header->value mapping and return its ordinal."""
        for column in record:
            self.ensure_column(column)
        cells = [""] * len(self._headers)
        for column, value in record.items():
            cells[self._headers.index(column)] = to_cell(value)
        self._rows.append(cells)
        return FIRST_DATA_ROW + len(self._rows) - 1

    def records(self) -> List[Dict[str, str]]:
        return [dict(zip(self._headers, row)) for row in self._rows]

    #=========================================================
    # Persistence
    #=========================================================

    def to_frame(self) -> pl.DataFrame:
        columns = {
            header: [row[i] for row in self._rows]
            for i, header in enumerate(self._headers)
        }
        return pl.DataFrame(columns, schema={header: pl.String for header in self._headers})

    def save(self) -> None:
        """Write the sheet back to disk atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        df = self.to_frame()
        with atomic_path(self.path) as tmp_path:
            if self.path.suffix == '.parquet':
                df.write_parquet(tmp_path)
            else:
                df.write_csv(tmp_path)
        logging.debug(f"Saved sheet '{self.name}' ({self.n_rows} rows) to {mask_path(self.path)}")


def _read_frame(path: Path) -> pl.DataFrame:
    if path.suffix == '.parquet':
        df = pl.read_parquet(path)
        return df.with_columns(pl.all().cast(pl.String))
    # Every column is read as text, cells are never type-inferred.
    return pl.read_csv(path, infer_schema_length=0)


class Workbook:
    """
    A folder of sheets. Sheets are loaded lazily and cached until
    `reload()` is called.

    Args:
        folder: Workbook folder.
        data_file: Optional file name of the Data sheet. Defaults to
            Data.parquet when present, Data.csv otherwise.
    """

    def __init__(self, folder: str | Path, data_file: Optional[str] = None):
        self.folder = Path(folder).resolve()
        self.data_file = data_file
        self._sheets: Dict[str, Sheet] = {}

    def sheet_path(self, name: str) -> Path:
        if name == DATA_SHEET:
            if self.data_file:
                return self.folder / self.data_file
            parquet_path = self.folder / f"{DATA_SHEET}.parquet"
            if parquet_path.exists():
                return parquet_path
        return self.folder / f"{name}.csv"

    def sheet(self, name: str, headers: Optional[Iterable[str]] = None) -> Sheet:
        """Return the named sheet, ensuring the given headers exist."""
        if name not in self._sheets:
            self._sheets[name] = Sheet.load(name, self.sheet_path(name), headers)
        else:
            for header in headers or []:
                self._sheets[name].ensure_column(header)
        return self._sheets[name]

    @property
    def data(self) -> Sheet:
        """The Data sheet, with Status and Batch ID columns ensured."""
        return self.sheet(DATA_SHEET, headers=[STATUS_COLUMN, BATCH_ID_COLUMN])

    def reload(self) -> None:
        """Drop cached sheets so the next access reads from disk."""
        self._sheets.clear()

    def save(self, *names: str) -> None:
        """Save the named sheets, or every loaded sheet when none are given."""
        for name in names or list(self._sheets):
            if name in self._sheets:
                self._sheets[name].save()
