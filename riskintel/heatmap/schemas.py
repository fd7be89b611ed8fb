"""Heatmap schemas."""

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class HeatmapView(StrEnum):
    INHERENT = "inherent"
    RESIDUAL = "residual"


class HeatmapCell(BaseModel):
    likelihood: int
    impact: int
    count: int = 0
    risk_codes: list[str] = Field(default_factory=list)
    level: str
    opacity: float


class HeatmapGrid(BaseModel):
    view: HeatmapView
    matrix_size: int
    period: Optional[str] = None    # None = live register
    total_risks: int
    plotted_risks: int
    dropped_risk_codes: list[str] = Field(default_factory=list)
    cells: list[HeatmapCell]


class CellDelta(BaseModel):
    likelihood: int
    impact: int
    before: int
    after: int
    delta: int
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class HeatmapComparison(BaseModel):
    view: HeatmapView
    before_period: Optional[str]
    after_period: Optional[str]
    cells: list[CellDelta]


class HeatmapFilters(BaseModel):
    category: Optional[str] = None
    division: Optional[str] = None
    department: Optional[str] = None
    status: Optional[str] = None
    is_priority: Optional[bool] = None
