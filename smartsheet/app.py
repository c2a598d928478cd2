import json
import logging
from typing import List, Optional
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sse_starlette.sse import EventSourceResponse

from smartsheet import assistant, config, prompts
from smartsheet.ai.engine_manager import ENGINE_SETTING, AIEngineManager, build_default_manager
from smartsheet.dashboard import chart_data, chart_keys
from smartsheet.export import MAX_EXPORT_COLS, MAX_EXPORT_ROWS, grid_to_csv, grid_to_xlsx
from smartsheet.formula import InvalidAddress
from smartsheet.models import (
    AnalysisResult, EngineSelect, FormulaSuggestRequest, FormulaSuggestion, Sheet,
    SheetAutoSum, SheetCreate, SheetRestoreCells, SheetTitle, SheetUpdateCell,
)
from smartsheet.storage import AppRepository, DatabaseManager, SheetRepository, normalize_address

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def create_app(db_path: Optional[str] = None, engine_manager: Optional[AIEngineManager] = None) -> FastAPI:
    app = FastAPI(title="SmartSheet")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    db = DatabaseManager(db_path or config.DB_PATH)
    db.initialize_schema()
    app_repo = AppRepository(db)
    sheet_repo = SheetRepository(db)

    if engine_manager is None:
        engine_manager = build_default_manager(config.ENABLE_LLM)
        engine_manager.restore(app_repo.get_setting(ENGINE_SETTING))

    app.state.sheet_repo = sheet_repo
    app.state.app_repo = app_repo
    app.state.engine_manager = engine_manager

    def _get_sheet(sheet_id: str) -> Sheet:
        sheet = sheet_repo.get_by_id(sheet_id)
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    # ── Sheets ────────────────────────────────────────────────────

    @app.post("/sheets", response_model=Sheet)
    async def create_sheet(req: SheetCreate):
        try:
            return sheet_repo.create(title=req.title, cells=req.cells, template=req.template)
        except InvalidAddress as e:
            raise HTTPException(status_code=422, detail=str(e))

    @app.get("/sheets", response_model=List[Sheet])
    async def list_sheets():
        return sheet_repo.get_all()

    @app.get("/sheets/{sheet_id}", response_model=Sheet)
    async def get_sheet(sheet_id: str):
        return _get_sheet(sheet_id)

    @app.delete("/sheets/{sheet_id}")
    async def delete_sheet(sheet_id: str):
        if not sheet_repo.delete(sheet_id):
            raise HTTPException(status_code=404, detail="Sheet not found")
        return {"status": "deleted"}

    @app.post("/sheets/{sheet_id}/duplicate", response_model=Sheet)
    async def duplicate_sheet(sheet_id: str):
        sheet = sheet_repo.duplicate(sheet_id)
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    @app.put("/sheets/{sheet_id}/title", response_model=Sheet)
    async def update_sheet_title(sheet_id: str, req: SheetTitle):
        title = req.title.strip()
        if not title:
            raise HTTPException(status_code=400, detail="Title is required")
        sheet = sheet_repo.update_title(sheet_id, title)
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    @app.put("/sheets/{sheet_id}/cells", response_model=Sheet)
    async def restore_sheet_cells(sheet_id: str, req: SheetRestoreCells):
        """Wholesale replace the grid (undo/redo)."""
        try:
            sheet = sheet_repo.restore_cells(sheet_id, req.cells)
        except InvalidAddress as e:
            raise HTTPException(status_code=422, detail=str(e))
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    @app.put("/sheets/{sheet_id}/cell", response_model=Sheet)
    async def update_sheet_cell(sheet_id: str, req: SheetUpdateCell):
        try:
            sheet = sheet_repo.update_cell(sheet_id, req.address, req.value)
        except InvalidAddress as e:
            raise HTTPException(status_code=422, detail=str(e))
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    @app.delete("/sheets/{sheet_id}/cell/{address}", response_model=Sheet)
    async def clear_sheet_cell(sheet_id: str, address: str):
        try:
            sheet = sheet_repo.clear_cell(sheet_id, address)
        except InvalidAddress as e:
            raise HTTPException(status_code=422, detail=str(e))
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    @app.post("/sheets/{sheet_id}/autosum", response_model=Sheet)
    async def autosum(sheet_id: str, req: SheetAutoSum):
        try:
            sheet = sheet_repo.apply_autosum(sheet_id, req.address)
        except InvalidAddress as e:
            raise HTTPException(status_code=422, detail=str(e))
        if not sheet:
            raise HTTPException(status_code=404, detail="Sheet not found")
        return sheet

    # ── Export / dashboard ────────────────────────────────────────

    @app.get("/sheets/{sheet_id}/export.csv")
    async def export_csv(sheet_id: str, rows: int = Query(config.SHEET_ROWS, ge=1, le=MAX_EXPORT_ROWS),
                         cols: int = Query(config.SHEET_COLS, ge=1, le=MAX_EXPORT_COLS)):
        sheet = _get_sheet(sheet_id)
        return Response(
            content=grid_to_csv(sheet.cells, rows, cols),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="sheet.csv"'},
        )

    @app.get("/sheets/{sheet_id}/export.xlsx")
    async def export_xlsx(sheet_id: str, rows: int = Query(config.SHEET_ROWS, ge=1, le=MAX_EXPORT_ROWS),
                          cols: int = Query(config.SHEET_COLS, ge=1, le=MAX_EXPORT_COLS)):
        sheet = _get_sheet(sheet_id)
        return Response(
            content=grid_to_xlsx(sheet.cells, rows, cols),
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": 'attachment; filename="sheet.xlsx"'},
        )

    @app.get("/sheets/{sheet_id}/chart-data")
    async def get_chart_data(sheet_id: str):
        sheet = _get_sheet(sheet_id)
        points = chart_data(sheet.cells)
        return {"data": points, "keys": chart_keys(points)}

    # ── AI assistance ─────────────────────────────────────────────

    @app.post("/sheets/{sheet_id}/suggest-formula", response_model=FormulaSuggestion)
    async def suggest_formula(sheet_id: str, req: FormulaSuggestRequest):
        """Ask the active engine for a formula; optionally write it like a manual edit."""
        sheet = _get_sheet(sheet_id)
        try:
            target = normalize_address(req.target_cell)
        except InvalidAddress as e:
            raise HTTPException(status_code=422, detail=str(e))
        formula = await assistant.suggest_formula(
            engine_manager.get_active(), req.description, sheet.cells, target,
        )
        if not formula or not req.apply:
            return FormulaSuggestion(formula=formula, applied=False, sheet=sheet)
        updated = sheet_repo.update_cell(sheet_id, target, formula)
        return FormulaSuggestion(formula=formula, applied=True, sheet=updated)

    @app.post("/sheets/{sheet_id}/analyze", response_model=AnalysisResult)
    async def analyze_sheet(sheet_id: str):
        sheet = _get_sheet(sheet_id)
        return await assistant.analyze_data(engine_manager.get_active(), sheet.cells)

    @app.get("/sheets/{sheet_id}/analyze/stream")
    async def analyze_sheet_stream(sheet_id: str, request: Request):
        """SSE: `chunk` events with raw model text, then one `result` event."""
        sheet = _get_sheet(sheet_id)
        engine = engine_manager.get_active()
        user_prompt = prompts.build_analysis_prompt(assistant.analysis_csv(sheet.cells))

        async def event_generator():
            full_response = ""
            try:
                async for chunk in assistant.stream_response(
                    engine, prompts.ANALYSIS_SYSTEM_PROMPT, user_prompt,
                    temperature=0.5, json_mode=True,
                ):
                    if await request.is_disconnected():
                        return
                    full_response += chunk
                    yield {"data": json.dumps({"type": "chunk", "content": chunk})}
                result = assistant.parse_analysis(full_response)
            except Exception as e:
                logger.warning("Streamed analysis failed, using fallback: %s", e)
                result = assistant.fallback_analysis()
            yield {"data": json.dumps({"type": "result", **result.model_dump()})}

        return EventSourceResponse(event_generator())

    # ── AI engines ────────────────────────────────────────────────

    @app.get("/ai/engines")
    async def list_engines():
        return {"engines": engine_manager.list_engines(), "active": engine_manager.active_name}

    @app.post("/ai/engines/active")
    async def set_active_engine(req: EngineSelect):
        try:
            engine_manager.set_active(req.name)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        app_repo.set_setting(ENGINE_SETTING, req.name)
        return {"active": engine_manager.active_name}

    @app.get("/ai/debug")
    async def get_debug_status():
        return {"enabled": config.DEBUG_AI}

    return app


def main():
    import uvicorn
    logging.basicConfig(level=logging.DEBUG if config.DEBUG_AI else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host="127.0.0.1", port=8000, timeout_keep_alive=5, loop="asyncio")


if __name__ == "__main__":
    main()
