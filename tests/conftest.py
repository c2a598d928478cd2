from __future__ import annotations

from typing import Any, AsyncGenerator

import pytest

from smartsheet.ai_engine import AIEngine
from smartsheet.models import Cell, Grid


def computed_grid(values: dict[str, Any]) -> Grid:
    """Grid whose cells already hold the given computed values."""
    return {
        addr: Cell(raw_value="" if value is None else str(value), computed_value=value)
        for addr, value in values.items()
    }


def raw_grid(values: dict[str, str]) -> Grid:
    """Grid of raw text only, nothing computed yet."""
    return {addr: Cell(raw_value=value) for addr, value in values.items()}


def computed(grid: Grid) -> dict[str, Any]:
    return {addr: cell.computed_value for addr, cell in grid.items()}


class ScriptedEngine(AIEngine):
    """Yields a fixed list of chunks and records the prompts it saw."""

    def __init__(self, chunks: list[str]) -> None:
        self.chunks = chunks
        self.calls: list[tuple[str, str]] = []

    async def generate_stream(
        self, system_prompt: str, user_prompt: str, *,
        temperature: float = 0.7, top_p: float = 0.95,
        max_tokens: int = 1024, seed: int | None = None,
        json_mode: bool = True,
    ) -> AsyncGenerator[str, None]:
        self.calls.append((system_prompt, user_prompt))
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "smartsheet-test.db")
