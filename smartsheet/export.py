"""Export of computed values over a fixed rectangle (CSV / XLSX).

Only ``computed_value`` is read; raw formulas never leave the grid.
"""

import csv
import io
from typing import Any, List

from openpyxl import Workbook

from smartsheet import config
from smartsheet.formula import column_letter, encode_address
from smartsheet.models import Grid

# Largest rectangle a caller may ask for
MAX_EXPORT_ROWS = 10_000
MAX_EXPORT_COLS = 702


def grid_to_rows(grid: Grid, rows: int = config.SHEET_ROWS, cols: int = config.SHEET_COLS) -> List[List[Any]]:
    """rows x cols matrix of computed values; missing cells become ''."""
    data: List[List[Any]] = []
    for r in range(rows):
        row: List[Any] = []
        for c in range(cols):
            cell = grid.get(encode_address(r, c))
            value = cell.computed_value if cell is not None else None
            row.append("" if value is None else value)
        data.append(row)
    return data


def grid_to_csv(grid: Grid, rows: int = config.SHEET_ROWS, cols: int = config.SHEET_COLS,
                header: bool = False) -> str:
    """CSV text of computed values. With *header*, a first line of column letters."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    if header:
        writer.writerow([column_letter(c) for c in range(cols)])
    writer.writerows(grid_to_rows(grid, rows, cols))
    return buf.getvalue()


def grid_to_xlsx(grid: Grid, rows: int = config.SHEET_ROWS, cols: int = config.SHEET_COLS,
                 sheet_name: str = "Sheet1") -> bytes:
    """XLSX workbook bytes with one worksheet of computed values."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    for row in grid_to_rows(grid, rows, cols):
        # openpyxl writes '' as an empty string cell; None leaves it blank
        ws.append([None if value == "" else value for value in row])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
