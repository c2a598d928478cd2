"""Tests for the sqlite sheet repository and the starter template."""

from __future__ import annotations

import pytest

from conftest import computed, raw_grid
from smartsheet.formula import InvalidAddress
from smartsheet.models import Cell
from smartsheet.storage import AppRepository, DatabaseManager, SheetRepository, normalize_address
from smartsheet.templates import HEADER_STYLE, TOTAL_STYLE, salary_template


@pytest.fixture
def db(db_path) -> DatabaseManager:
    manager = DatabaseManager(db_path)
    manager.initialize_schema()
    return manager


@pytest.fixture
def repo(db) -> SheetRepository:
    return SheetRepository(db)


class TestSalaryTemplate:
    def test_layout(self) -> None:
        grid = salary_template()
        assert grid["A1"].computed_value == "Staff Name"
        assert grid["A1"].style == HEADER_STYLE
        assert grid["D2"].computed_value == 0.2
        assert grid["E2"].raw_value == "=(C2/12)*(1-D2)"
        assert grid["E2"].computed_value == 0
        assert grid["A5"].computed_value == "TOTAL"
        assert grid["E5"].raw_value == "=SUM(E2:E4)"
        assert grid["E5"].style == TOTAL_STYLE


class TestNormalizeAddress:
    def test_upper_cases(self) -> None:
        assert normalize_address(" c2 ") == "C2"

    def test_rejects_bad(self) -> None:
        with pytest.raises(InvalidAddress):
            normalize_address("C")


class TestDatabase:
    def test_schema_is_reentrant(self, db) -> None:
        sheet = SheetRepository(db).create(title="Kept")
        db.initialize_schema()
        db.initialize_schema()
        assert SheetRepository(db).get_by_id(sheet.id).title == "Kept"
        with db.get_connection() as conn:
            columns = [row["name"] for row in conn.execute("PRAGMA table_info(sheets)")]
        assert columns == ["id", "title", "cells_json", "created_at", "updated_at"]

    def test_settings(self, db) -> None:
        app_repo = AppRepository(db)
        assert app_repo.get_setting("ai_engine") is None
        app_repo.set_setting("ai_engine", "mock")
        app_repo.set_setting("ai_engine", "openai")
        assert app_repo.get_setting("ai_engine") == "openai"


class TestSheetRepository:
    def test_create_from_template(self, repo) -> None:
        sheet = repo.create(title="Payroll")
        assert sheet.id
        assert sheet.title == "Payroll"
        assert sheet.cells == salary_template()
        assert [s.id for s in repo.get_all()] == [sheet.id]

    def test_create_blank(self, repo) -> None:
        assert repo.create(template=False).cells == {}

    def test_create_with_cells_recalculates(self, repo) -> None:
        sheet = repo.create(cells=raw_grid({"a1": "2", "A2": "=A1*3"}))
        assert computed(sheet.cells) == {"A1": 2, "A2": 6}

    def test_values_keep_their_types(self, repo) -> None:
        sheet = repo.create(cells=raw_grid({"A1": "42", "A2": "0.5", "A3": "7 dwarves", "A4": "=1/0"}))
        reloaded = repo.get_by_id(sheet.id)
        assert computed(reloaded.cells) == {"A1": 42, "A2": 0.5, "A3": "7 dwarves", "A4": "#ERROR"}
        assert isinstance(reloaded.cells["A1"].computed_value, int)
        assert isinstance(reloaded.cells["A2"].computed_value, float)

    def test_update_cell(self, repo) -> None:
        sheet = repo.create()
        updated = repo.update_cell(sheet.id, "c2", "60000")
        assert updated.cells["C2"].computed_value == 60000
        assert updated.cells["E2"].computed_value == 4000
        # The total is two hops from C2 and lags one edit behind
        assert updated.cells["E5"].computed_value == 0

        updated = repo.update_cell(sheet.id, "E6", "=sum(e2:e4)")
        assert updated.cells["E6"].raw_value == "=sum(e2:e4)"
        assert updated.cells["E6"].computed_value == 4000
        assert updated.cells["E5"].computed_value == 4000
        assert repo.get_by_id(sheet.id).cells == updated.cells

    def test_update_cell_rejects_bad_address(self, repo) -> None:
        sheet = repo.create()
        with pytest.raises(InvalidAddress):
            repo.update_cell(sheet.id, "E", "1")

    def test_update_unknown_sheet(self, repo) -> None:
        assert repo.update_cell("missing", "A1", "1") is None

    def test_clear_cell(self, repo) -> None:
        sheet = repo.create()
        cleared = repo.clear_cell(sheet.id, "A1")
        assert cleared.cells["A1"].raw_value == ""
        assert cleared.cells["A1"].computed_value == ""
        assert cleared.cells["A1"].style == HEADER_STYLE

    def test_autosum(self, repo) -> None:
        sheet = repo.create()
        repo.update_cell(sheet.id, "C2", "100")
        repo.update_cell(sheet.id, "C3", "200")
        summed = repo.apply_autosum(sheet.id, "c5")
        assert summed.cells["C5"].raw_value == "=SUM(C2:C4)"
        assert summed.cells["C5"].computed_value == 300

    def test_autosum_below_header_is_noop(self, repo) -> None:
        sheet = repo.create()
        after = repo.apply_autosum(sheet.id, "C2")
        assert after.cells == sheet.cells

    def test_restore_cells(self, repo) -> None:
        sheet = repo.create()
        restored = repo.restore_cells(sheet.id, {"B3": Cell(raw_value="=B2+1"), "B2": Cell(raw_value="1")})
        assert computed(restored.cells) == {"B3": 2, "B2": 1}
        assert repo.restore_cells("missing", {}) is None

    def test_title_duplicate_delete(self, repo) -> None:
        sheet = repo.create(title="Payroll")
        assert repo.update_title(sheet.id, "Q1 Payroll").title == "Q1 Payroll"

        copy = repo.duplicate(sheet.id)
        assert copy.id != sheet.id
        assert copy.title == "Q1 Payroll (copy)"
        assert copy.cells == repo.get_by_id(sheet.id).cells
        assert repo.duplicate("missing") is None

        assert repo.delete(sheet.id) is True
        assert repo.get_by_id(sheet.id) is None
        assert repo.delete(sheet.id) is False
