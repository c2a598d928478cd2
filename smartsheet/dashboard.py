"""Chart-ready series for the dashboard panel."""

from typing import Any, Dict, List

from smartsheet.formula import column_letter, encode_address
from smartsheet.models import Grid

CHART_ROWS = 20
CHART_COLS = 10


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def chart_data(grid: Grid, rows: int = CHART_ROWS, cols: int = CHART_COLS) -> List[Dict[str, Any]]:
    """Row 1 names the series; each later row with a numeric value is one point."""
    headers = []
    for c in range(cols):
        cell = grid.get(encode_address(0, c))
        label = cell.computed_value if cell is not None else None
        headers.append(str(label) if label not in (None, "") else f"Col {column_letter(c)}")

    points: List[Dict[str, Any]] = []
    for r in range(1, rows):
        point: Dict[str, Any] = {"name": f"Row {r + 1}"}
        for c in range(cols):
            cell = grid.get(encode_address(r, c))
            if cell is not None and _is_number(cell.computed_value):
                point[headers[c]] = cell.computed_value
        if len(point) > 1:
            points.append(point)
    return points


def chart_keys(points: List[Dict[str, Any]]) -> List[str]:
    """Numeric series names, taken from the first point."""
    if not points:
        return []
    return [k for k, v in points[0].items() if k != "name" and _is_number(v)]
