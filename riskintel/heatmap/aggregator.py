"""
Heatmap Aggregator.

Buckets risks into a matrix_size × matrix_size likelihood/impact grid.
Coordinates are rounded half-up; anything outside [1, matrix_size] or
missing is left off the grid and reported in ``dropped_risk_codes``, so
cell counts always sum to the number of plotted risks.
"""

import math
import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.db.repositories.risks import org_repo, risk_repo
from riskintel.errors import ValidationError
from riskintel.heatmap.schemas import (
    CellDelta,
    HeatmapCell,
    HeatmapComparison,
    HeatmapFilters,
    HeatmapGrid,
    HeatmapView,
)
from riskintel.periods.schemas import Period
from riskintel.periods.store import PeriodSnapshotStore, snapshot_store
from riskintel.scoring.levels import level_for

logger = structlog.get_logger(__name__)


def cell_opacity(count: int) -> float:
    if count <= 0:
        return 0.1
    if count == 1:
        return 0.3
    if count == 2:
        return 0.5
    if count <= 4:
        return 0.7
    return 1.0


def bucket(value) -> Optional[int]:
    """Round half-up to a grid coordinate."""
    if value is None:
        return None
    return math.floor(value + 0.5)


def coordinates(item, view: HeatmapView) -> tuple[Optional[int], Optional[int]]:
    """(likelihood, impact) for a risk or snapshot. Residual falls back to inherent."""
    if HeatmapView(view) is HeatmapView.RESIDUAL:
        res_l = getattr(item, "residual_likelihood", None)
        res_i = getattr(item, "residual_impact", None)
        if res_l is not None and res_i is not None:
            return bucket(res_l), bucket(res_i)
    return bucket(item.likelihood_inherent), bucket(item.impact_inherent)


def build_grid(
    items: Iterable,
    matrix_size: int,
    view: HeatmapView = HeatmapView.INHERENT,
    period: Optional[str] = None,
) -> HeatmapGrid:
    codes: dict[tuple[int, int], list[str]] = {}
    dropped: list[str] = []
    total = 0

    for item in items:
        total += 1
        likelihood, impact = coordinates(item, view)
        if (
            likelihood is None
            or impact is None
            or not 1 <= likelihood <= matrix_size
            or not 1 <= impact <= matrix_size
        ):
            dropped.append(item.risk_code)
            continue
        codes.setdefault((likelihood, impact), []).append(item.risk_code)

    cells = []
    for likelihood in range(1, matrix_size + 1):
        for impact in range(1, matrix_size + 1):
            in_cell = sorted(codes.get((likelihood, impact), []))
            cells.append(HeatmapCell(
                likelihood=likelihood,
                impact=impact,
                count=len(in_cell),
                risk_codes=in_cell,
                level=level_for(likelihood, impact).value,
                opacity=cell_opacity(len(in_cell)),
            ))

    if dropped:
        logger.debug("heatmap_risks_dropped", count=len(dropped), risk_codes=dropped[:20])
    return HeatmapGrid(
        view=HeatmapView(view),
        matrix_size=matrix_size,
        period=period,
        total_risks=total,
        plotted_risks=total - len(dropped),
        dropped_risk_codes=sorted(dropped),
        cells=cells,
    )


def compare_grids(before: HeatmapGrid, after: HeatmapGrid) -> HeatmapComparison:
    """Per-cell count deltas between two grids of the same shape and view."""
    if before.matrix_size != after.matrix_size or before.view != after.view:
        raise ValidationError(
            "Heatmaps must share matrix size and view to be compared",
            details={
                "before": {"matrix_size": before.matrix_size, "view": before.view.value},
                "after": {"matrix_size": after.matrix_size, "view": after.view.value},
            },
        )
    after_cells = {(c.likelihood, c.impact): c for c in after.cells}
    deltas = []
    for old in before.cells:
        new = after_cells[(old.likelihood, old.impact)]
        deltas.append(CellDelta(
            likelihood=old.likelihood,
            impact=old.impact,
            before=old.count,
            after=new.count,
            delta=new.count - old.count,
            added=sorted(set(new.risk_codes) - set(old.risk_codes)),
            removed=sorted(set(old.risk_codes) - set(new.risk_codes)),
        ))
    return HeatmapComparison(
        view=before.view,
        before_period=before.period,
        after_period=after.period,
        cells=deltas,
    )


def _matches(item, filters: HeatmapFilters) -> bool:
    for field, wanted in filters.model_dump(exclude_none=True).items():
        if getattr(item, field, None) != wanted:
            return False
    return True


class HeatmapService:
    def __init__(self, store: PeriodSnapshotStore = snapshot_store):
        self.store = store

    async def get_heatmap(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        view: HeatmapView = HeatmapView.INHERENT,
        period: Optional[Period] = None,
        filters: Optional[HeatmapFilters] = None,
    ) -> HeatmapGrid:
        """Grid over the live register, or over a committed period when given."""
        org = await org_repo.require(db, org_id)
        filters = filters or HeatmapFilters()
        if period is None:
            items = await risk_repo.list_filtered(db, org_id, **filters.model_dump())
        else:
            snapshots = await self.store.get_history_for_period(db, org_id, period)
            items = [s for s in snapshots if _matches(s, filters)]
        return build_grid(items, org.matrix_size, view, str(period) if period else None)

    async def compare(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        view: HeatmapView,
        before: Optional[Period],
        after: Optional[Period],
        filters: Optional[HeatmapFilters] = None,
    ) -> HeatmapComparison:
        return compare_grids(
            await self.get_heatmap(db, org_id, view, before, filters),
            await self.get_heatmap(db, org_id, view, after, filters),
        )


heatmap_service = HeatmapService()
