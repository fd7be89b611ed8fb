"""Heatmap endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.api.deps import get_db, get_org_id
from riskintel.heatmap.aggregator import heatmap_service
from riskintel.heatmap.schemas import HeatmapComparison, HeatmapFilters, HeatmapGrid, HeatmapView
from riskintel.periods.schemas import Period

router = APIRouter(prefix="/api/v1/heatmap", tags=["heatmap"])


def _period_or_live(value: Optional[str]) -> Optional[Period]:
    if not value or value.lower() == "live":
        return None
    return Period.parse(value)


def _filters(
    category: Optional[str] = Query(default=None),
    division: Optional[str] = Query(default=None),
    department: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    is_priority: Optional[bool] = Query(default=None),
) -> HeatmapFilters:
    return HeatmapFilters(
        category=category,
        division=division,
        department=department,
        status=status,
        is_priority=is_priority,
    )


@router.get("", response_model=HeatmapGrid)
async def get_heatmap(
    view: HeatmapView = Query(default=HeatmapView.INHERENT),
    period: Optional[str] = Query(default=None, description="Committed period, or live"),
    filters: HeatmapFilters = Depends(_filters),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await heatmap_service.get_heatmap(db, org_id, view, _period_or_live(period), filters)


@router.get("/compare", response_model=HeatmapComparison)
async def compare_heatmaps(
    before: str = Query(),
    after: Optional[str] = Query(default=None),
    view: HeatmapView = Query(default=HeatmapView.INHERENT),
    filters: HeatmapFilters = Depends(_filters),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await heatmap_service.compare(
        db, org_id, view, _period_or_live(before), _period_or_live(after), filters
    )
