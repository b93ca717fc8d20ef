from __future__ import annotations

import csv
import io
import logging
import zipfile
from pathlib import Path
from typing import Any, Callable, List, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .exceptions import GridReadError
from .models import RawGrid

logger = logging.getLogger(__name__)

MIN_GRID_ROWS = 2
CSV_ENCODINGS = ("utf-8-sig", "latin-1")

GridStrategy = Callable[[bytes], "RawGrid | None"]


def read_xlsx_values(data: bytes) -> RawGrid | None:
    """First worksheet as stored, trusting the workbook's dimension metadata."""
    return _read_xlsx(data, reset_dimensions=False)


def read_xlsx_reset_range(data: bytes) -> RawGrid | None:
    """First worksheet with the used range rebuilt from the cells actually present.

    Some exporters write a ``<dimension>`` of ``A1`` (or nothing at all) even though
    the sheet has data, which makes a plain read return one row.
    """
    return _read_xlsx(data, reset_dimensions=True)


def read_csv_rows(data: bytes) -> RawGrid | None:
    for encoding in CSV_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        if "\x00" in text:
            return None
        return [row for row in csv.reader(io.StringIO(text))]
    return None


SPREADSHEET_STRATEGIES: Sequence[GridStrategy] = (read_xlsx_values, read_xlsx_reset_range, read_csv_rows)
CSV_STRATEGIES: Sequence[GridStrategy] = (read_csv_rows, read_xlsx_values, read_xlsx_reset_range)


def read_grid(data: bytes, filename: str | None = None) -> RawGrid:
    """Decode uploaded bytes into rows of cells.

    Strategies run in priority order and the first grid with at least
    ``MIN_GRID_ROWS`` rows wins.
    """
    if not data:
        raise GridReadError("The uploaded file is empty.")

    strategies = CSV_STRATEGIES if _is_csv(filename) else SPREADSHEET_STRATEGIES
    for strategy in strategies:
        grid = strategy(data)
        if grid is not None and len(grid) >= MIN_GRID_ROWS:
            logger.debug("Read %s rows from %s using %s", len(grid), filename or "upload", strategy.__name__)
            return grid
    raise GridReadError(
        "Could not read any schedule rows from the file. Try saving it again as .xlsx or .csv."
    )


def read_grid_file(path: str | Path) -> RawGrid:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Schedule file not found: {path}")
    return read_grid(path.read_bytes(), path.name)


def _read_xlsx(data: bytes, *, reset_dimensions: bool) -> RawGrid | None:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError):
        return None
    try:
        if not workbook.worksheets:
            return None
        sheet = workbook.worksheets[0]
        if reset_dimensions:
            sheet.reset_dimensions()
        return [_trim_row(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _trim_row(row: Sequence[Any]) -> List[Any]:
    cells = ["" if value is None else value for value in row]
    while cells and cells[-1] == "":
        cells.pop()
    return cells


def _is_csv(filename: str | None) -> bool:
    return filename is not None and filename.lower().endswith(".csv")
