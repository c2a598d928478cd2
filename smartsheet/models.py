from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

class CellStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    bold: bool = False
    italic: bool = False
    color: Optional[str] = None
    background_color: Optional[str] = None

class Cell(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_value: str = ""  # what the user typed, e.g. "100" or "=A1+B1"
    computed_value: Union[int, float, str, None] = None
    style: Optional[CellStyle] = None

Grid = Dict[str, Cell]

class Sheet(BaseModel):
    id: Optional[str] = Field(default=None)
    title: str = "Untitled Sheet"
    cells: Dict[str, Cell] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

class SheetCreate(BaseModel):
    title: str = "Untitled Sheet"
    template: bool = True
    cells: Optional[Dict[str, Cell]] = None

class SheetUpdateCell(BaseModel):
    address: str
    value: str

class SheetRestoreCells(BaseModel):
    cells: Dict[str, Cell]

class SheetTitle(BaseModel):
    title: str

class SheetAutoSum(BaseModel):
    address: str

class FormulaSuggestRequest(BaseModel):
    description: str
    target_cell: str
    apply: bool = True

class FormulaSuggestion(BaseModel):
    formula: str = ""
    applied: bool = False
    sheet: Optional[Sheet] = None

class AnalysisResult(BaseModel):
    summary: str
    insights: List[str] = Field(default_factory=list)

class EngineSelect(BaseModel):
    name: str
