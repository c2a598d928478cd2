"""Starter grids for new sheets."""

from smartsheet.formula import recalculate_grid
from smartsheet.models import Cell, CellStyle, Grid

HEADER_STYLE = CellStyle(bold=True, background_color="#f3f4f6", color="#1f2937")
TOTAL_STYLE = CellStyle(bold=True, background_color="#e5e7eb")

SALARY_HEADERS = ["Staff Name", "Role", "Annual Salary", "Tax Rate", "Monthly Net"]
DEFAULT_TAX_RATE = "0.20"
STAFF_ROWS = (2, 3, 4)


def salary_template() -> Grid:
    """Basic salary sheet: monthly net = (annual / 12) * (1 - tax), with a total row."""
    grid: Grid = {}
    for col, header in zip("ABCDE", SALARY_HEADERS):
        grid[f"{col}1"] = Cell(raw_value=header, style=HEADER_STYLE)

    for row in STAFF_ROWS:
        grid[f"A{row}"] = Cell(raw_value="")
        grid[f"B{row}"] = Cell(raw_value="")
        grid[f"C{row}"] = Cell(raw_value="0")
        grid[f"D{row}"] = Cell(raw_value=DEFAULT_TAX_RATE)
        grid[f"E{row}"] = Cell(raw_value=f"=(C{row}/12)*(1-D{row})")

    total_row = STAFF_ROWS[-1] + 1
    grid[f"A{total_row}"] = Cell(raw_value="TOTAL", style=TOTAL_STYLE)
    grid[f"E{total_row}"] = Cell(
        raw_value=f"=SUM(E{STAFF_ROWS[0]}:E{STAFF_ROWS[-1]})", style=TOTAL_STYLE,
    )
    return recalculate_grid(grid)
