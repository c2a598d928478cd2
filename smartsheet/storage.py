import sqlite3
import json
import logging
from typing import Dict, List, Optional
import uuid
from smartsheet.config import get_resource_path
from smartsheet.formula import apply_edit, autosum_formula, decode_address, recalculate_grid
from smartsheet.models import Cell, Grid, Sheet
from smartsheet.templates import salary_template

logger = logging.getLogger(__name__)

class DatabaseManager:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def initialize_schema(self, schema_path: Optional[str] = None):
        with open(schema_path or get_resource_path("schema.sql"), 'r') as f:
            schema_script = f.read()
        with self.get_connection() as conn:
            conn.executescript(schema_script)

class AppRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    def set_setting(self, key: str, value: str):
        sql = "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)"
        with self.db.get_connection() as conn:
            conn.execute(sql, (key, value))
            conn.commit()

    def get_setting(self, key: str) -> Optional[str]:
        sql = "SELECT value FROM settings WHERE key = ?"
        with self.db.get_connection() as conn:
            row = conn.execute(sql, (key,)).fetchone()
            return row['value'] if row else None


def normalize_address(address: str) -> str:
    """Upper-case and validate an address coming from the host. Raises InvalidAddress."""
    text = address.strip().upper()
    decode_address(text)
    return text


class SheetRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    @staticmethod
    def _dump_cells(cells: Grid) -> str:
        return json.dumps({addr: cell.model_dump(exclude_none=True) for addr, cell in cells.items()})

    def _row_to_sheet(self, row) -> Sheet:
        d = dict(row)
        cells_raw = json.loads(d.pop("cells_json", "{}"))
        return Sheet(**d, cells={addr: Cell(**c) for addr, c in cells_raw.items()})

    def create(self, title: str = "Untitled Sheet", cells: Optional[Grid] = None,
               template: bool = True) -> Sheet:
        sheet_id = str(uuid.uuid4())
        if cells is not None:
            grid = recalculate_grid({normalize_address(a): c for a, c in cells.items()})
        elif template:
            grid = salary_template()
        else:
            grid = {}
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT INTO sheets (id, title, cells_json) VALUES (?, ?, ?)",
                (sheet_id, title, self._dump_cells(grid)),
            )
            conn.commit()
        logger.info("Created sheet %s (%d cells)", sheet_id, len(grid))
        return self.get_by_id(sheet_id)

    def get_by_id(self, sheet_id: str) -> Optional[Sheet]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM sheets WHERE id = ?", (sheet_id,)).fetchone()
            return self._row_to_sheet(row) if row else None

    def get_all(self) -> List[Sheet]:
        with self.db.get_connection() as conn:
            rows = conn.execute("SELECT * FROM sheets ORDER BY updated_at DESC").fetchall()
            return [self._row_to_sheet(r) for r in rows]

    def _save(self, conn, sheet_id: str, cells: Grid):
        """Persist an already recalculated grid."""
        conn.execute(
            "UPDATE sheets SET cells_json = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (self._dump_cells(cells), sheet_id),
        )
        conn.commit()

    # ── Cell mutations ────────────────────────────────────────────

    def update_cell(self, sheet_id: str, address: str, raw_value: str) -> Optional[Sheet]:
        """Set one cell's raw text and recalculate. Raises InvalidAddress for a bad address."""
        address = normalize_address(address)
        with self.db.get_connection() as conn:
            sheet = self.get_by_id(sheet_id)
            if not sheet:
                return None
            self._save(conn, sheet_id, apply_edit(sheet.cells, address, raw_value))
            return self.get_by_id(sheet_id)

    def clear_cell(self, sheet_id: str, address: str) -> Optional[Sheet]:
        return self.update_cell(sheet_id, address, "")

    def apply_autosum(self, sheet_id: str, address: str) -> Optional[Sheet]:
        """Write an AutoSum formula into *address*; unchanged sheet when nothing is above it."""
        address = normalize_address(address)
        formula = autosum_formula(address)
        if formula is None:
            return self.get_by_id(sheet_id)
        return self.update_cell(sheet_id, address, formula)

    def restore_cells(self, sheet_id: str, cells: Dict[str, Cell]) -> Optional[Sheet]:
        """Wholesale replace the grid (used by undo/redo)."""
        grid = recalculate_grid({normalize_address(a): c for a, c in cells.items()})
        with self.db.get_connection() as conn:
            existing = conn.execute("SELECT id FROM sheets WHERE id = ?", (sheet_id,)).fetchone()
            if not existing:
                return None
            self._save(conn, sheet_id, grid)
            return self.get_by_id(sheet_id)

    def update_title(self, sheet_id: str, title: str) -> Optional[Sheet]:
        with self.db.get_connection() as conn:
            conn.execute("UPDATE sheets SET title = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?", (title, sheet_id))
            conn.commit()
            return self.get_by_id(sheet_id)

    def duplicate(self, sheet_id: str) -> Optional[Sheet]:
        sheet = self.get_by_id(sheet_id)
        if not sheet:
            return None
        return self.create(title=f"{sheet.title} (copy)", cells=dict(sheet.cells))

    def delete(self, sheet_id: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute("DELETE FROM sheets WHERE id = ?", (sheet_id,))
            conn.commit()
            return cursor.rowcount > 0
