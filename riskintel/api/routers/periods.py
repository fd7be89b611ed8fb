"""
Period endpoints: commit, history, trends, migrations, comparison.

Periods are written as "Q3 2025" or "2025-Q3".
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.api.deps import get_actor, get_db, get_org_id
from riskintel.periods.analysis import period_analytics
from riskintel.periods.schemas import (
    ActivePeriodResponse,
    CommitRequest,
    MigrationReport,
    Period,
    PeriodCommitResponse,
    PeriodComparison,
    PeriodTrendData,
    RiskSnapshotResponse,
    SetActivePeriodRequest,
)
from riskintel.periods.store import snapshot_store

router = APIRouter(prefix="/api/v1/periods", tags=["periods"])


def _active_response(current: Period, previous: Optional[Period]) -> ActivePeriodResponse:
    return ActivePeriodResponse(
        current_period=str(current),
        previous_period=str(previous) if previous else None,
    )


@router.post("/commit", response_model=PeriodCommitResponse, status_code=201)
async def commit_period(
    body: CommitRequest,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    """Freeze the register for a period (default: the active period)."""
    if body.period:
        period = Period.parse(body.period)
    else:
        period, _ = await snapshot_store.get_active_period(db, org_id)
    return await snapshot_store.commit(db, org_id, period, notes=body.notes, committed_by=actor)


@router.get("/commits", response_model=list[PeriodCommitResponse])
async def list_commits(
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await snapshot_store.list_commits(db, org_id)


@router.get("/active", response_model=ActivePeriodResponse)
async def get_active_period(
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    current, previous = await snapshot_store.get_active_period(db, org_id)
    return _active_response(current, previous)


@router.put("/active", response_model=ActivePeriodResponse)
async def set_active_period(
    body: SetActivePeriodRequest,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    period = Period.parse(body.period)
    await snapshot_store.set_active_period(db, org_id, period, previous=period.previous())
    return _active_response(period, period.previous())


@router.get("/trends", response_model=list[PeriodTrendData])
async def get_trends(
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await period_analytics.get_period_trends(db, org_id)


@router.get("/migrations", response_model=MigrationReport)
async def get_migrations(
    period_from: str = Query(alias="from"),
    period_to: str = Query(alias="to"),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await period_analytics.analyze_migrations(
        db, org_id, Period.parse(period_from), Period.parse(period_to)
    )


@router.get("/compare", response_model=PeriodComparison)
async def compare_periods(
    period_from: str = Query(alias="from"),
    period_to: str = Query(alias="to"),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await period_analytics.compare_snapshots(
        db, org_id, Period.parse(period_from), Period.parse(period_to)
    )


@router.get("/timeline/{risk_code}", response_model=list[RiskSnapshotResponse])
async def get_risk_timeline(
    risk_code: str,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await snapshot_store.get_risk_timeline(db, org_id, risk_code)


@router.get("/{period}/history", response_model=list[RiskSnapshotResponse])
async def get_period_history(
    period: str,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await snapshot_store.get_history_for_period(db, org_id, Period.parse(period))
