"""AI assistance for the grid: formula suggestions and data analysis.

Both operations degrade instead of raising. A failed or empty generation
gives an empty formula or the fallback analysis, and a suggested formula is
only ever applied through the normal edit path.
"""

import asyncio
import json
import logging
import re
import time
from typing import AsyncGenerator

from smartsheet import config, prompts
from smartsheet.ai_engine import AIEngine, AILogger
from smartsheet.export import grid_to_csv
from smartsheet.formula import column_letter, encode_address
from smartsheet.models import AnalysisResult, Grid

logger = logging.getLogger(__name__)

ERROR_PREFIX = "[ERROR]"

_FENCE_RE = re.compile(r'```(?:[A-Za-z]+)?')


class GenerationError(Exception):
    """The engine reported an error or produced nothing usable."""


def fallback_analysis() -> AnalysisResult:
    return AnalysisResult(
        summary=prompts.ANALYSIS_FALLBACK_SUMMARY,
        insights=list(prompts.ANALYSIS_FALLBACK_INSIGHTS),
    )


async def stream_response(
    engine: AIEngine, system_prompt: str, user_prompt: str, *,
    temperature: float = 0.7, max_tokens: int = 1024, json_mode: bool = False,
) -> AsyncGenerator[str, None]:
    """Yield engine chunks; raise GenerationError on an in-band error chunk."""
    async for chunk in engine.generate_stream(
        system_prompt, user_prompt,
        temperature=temperature, max_tokens=max_tokens, json_mode=json_mode,
    ):
        if chunk.startswith(ERROR_PREFIX):
            raise GenerationError(chunk[len(ERROR_PREFIX):].strip())
        yield chunk


async def collect_response(
    engine: AIEngine, system_prompt: str, user_prompt: str, *,
    temperature: float = 0.7, max_tokens: int = 1024, json_mode: bool = False,
    timeout: float | None = None,
) -> str:
    """Full response text. Raises GenerationError or TimeoutError."""
    started = time.monotonic()
    full_response = ""
    ok = False
    try:
        async with asyncio.timeout(timeout if timeout is not None else config.GENERATION_TIMEOUT):
            async for chunk in stream_response(
                engine, system_prompt, user_prompt,
                temperature=temperature, max_tokens=max_tokens, json_mode=json_mode,
            ):
                full_response += chunk
        ok = bool(full_response.strip())
    finally:
        AILogger.log_event(
            type(engine).__name__, time.monotonic() - started,
            len(system_prompt) + len(user_prompt), ok,
        )
    return full_response


# ── Formula suggestion ────────────────────────────────────────────

def header_context(grid: Grid, cols: int = prompts.HEADER_CONTEXT_COLS) -> list[str]:
    """'A: Staff Name' style labels for row 1."""
    headers = []
    for c in range(cols):
        cell = grid.get(encode_address(0, c))
        value = cell.computed_value if cell is not None else None
        headers.append(f"{column_letter(c)}: {'' if value is None else value}")
    return headers


def clean_formula(text: str) -> str:
    """Strip markdown fences and labels; '' when nothing is left."""
    cleaned = _FENCE_RE.sub('', text).replace('plaintext', '').strip()
    if not cleaned:
        return ""
    line = next(ln.strip() for ln in cleaned.splitlines() if ln.strip())
    line = line.strip('`').strip()
    if not line:
        return ""
    if not line.startswith('='):
        line = '=' + line
    return line if len(line) > 1 else ""


async def suggest_formula(engine: AIEngine, description: str, grid: Grid, target_cell: str) -> str:
    """Candidate formula for *target_cell*, or '' on any failure."""
    if not description.strip():
        return ""
    user_prompt = prompts.build_formula_prompt(description, target_cell, header_context(grid))
    try:
        text = await collect_response(
            engine, prompts.FORMULA_SYSTEM_PROMPT, user_prompt,
            temperature=0.2, max_tokens=128,
        )
    except Exception as e:
        logger.warning("Formula suggestion failed: %s", e)
        return ""
    return clean_formula(text)


# ── Data analysis ─────────────────────────────────────────────────

def analysis_csv(grid: Grid) -> str:
    return grid_to_csv(grid, prompts.ANALYSIS_ROWS, prompts.ANALYSIS_COLS, header=True)


def parse_analysis(text: str) -> AnalysisResult:
    """Parse the analyst's JSON reply. Raises GenerationError when unusable."""
    raw = text.strip()
    raw = re.sub(r'^```(?:json)?\s*\n?', '', raw)
    raw = re.sub(r'\n?```\s*$', '', raw)
    start = raw.find('{')
    end = raw.rfind('}')
    if start == -1 or end == -1:
        raise GenerationError("AI returned no JSON object")
    try:
        data = json.loads(raw[start:end + 1])
    except json.JSONDecodeError as e:
        raise GenerationError(f"AI returned invalid JSON: {e}") from e
    summary = data.get("summary") if isinstance(data, dict) else None
    if not isinstance(summary, str) or not summary.strip():
        raise GenerationError("AI returned no summary")
    insights = data.get("insights", [])
    if not isinstance(insights, list):
        insights = []
    return AnalysisResult(summary=summary.strip(), insights=[str(i) for i in insights if str(i).strip()])


async def analyze_data(engine: AIEngine, grid: Grid) -> AnalysisResult:
    """Summary and insights for the grid, or the fallback result."""
    user_prompt = prompts.build_analysis_prompt(analysis_csv(grid))
    try:
        text = await collect_response(
            engine, prompts.ANALYSIS_SYSTEM_PROMPT, user_prompt,
            temperature=0.5, json_mode=True,
        )
        return parse_analysis(text)
    except Exception as e:
        logger.warning("Analysis failed, using fallback: %s", e)
        return fallback_analysis()
