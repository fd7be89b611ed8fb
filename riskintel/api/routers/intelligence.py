"""
Risk intelligence endpoints.

Events in, classifier scan, alert review (accept / reject), application to
risk scores (apply / undo) and batch operations.
"""

import uuid
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskintel.api.deps import get_actor, get_db, get_org_id, get_sessionmaker
from riskintel.db.repositories.alerts import event_repo
from riskintel.db.repositories.risks import risk_repo
from riskintel.intelligence.manager import alert_manager
from riskintel.intelligence.scanner import IntelligenceScanner
from riskintel.intelligence.schemas import (
    AlertCreate,
    AlertResponse,
    AlertStatus,
    BatchApplyRequest,
    BatchResult,
    BulkDeleteRequest,
    ClassificationResult,
    ExternalEventCreate,
    ExternalEventResponse,
    ReviewRequest,
    ScanResult,
    UndoRequest,
)

router = APIRouter(prefix="/api/v1/intelligence", tags=["intelligence"])


@lru_cache(maxsize=1)
def get_scanner() -> IntelligenceScanner:
    return IntelligenceScanner()


# ── Events & scan ──────────────────────────────────────────────────────


@router.post("/events", response_model=ExternalEventResponse, status_code=201)
async def record_event(
    body: ExternalEventCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    scanner: IntelligenceScanner = Depends(get_scanner),
):
    """Store an external event; a duplicate returns the existing one with 200."""
    event, created = await scanner.record_event(db, org_id, body)
    if not created:
        response.status_code = 200
    return event


@router.get("/events", response_model=list[ExternalEventResponse])
async def list_events(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await event_repo.list(db, org_id, offset=offset, limit=limit, order_by="published_date")


@router.post("/scan", response_model=ScanResult)
async def run_scan(
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    scanner: IntelligenceScanner = Depends(get_scanner),
):
    return await scanner.scan(db, org_id)


# ── Alerts ─────────────────────────────────────────────────────────────


@router.post("/alerts", response_model=AlertResponse, status_code=201)
async def create_alert(
    body: AlertCreate,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    risk = await risk_repo.require_code(db, org_id, body.risk_code)
    classification = ClassificationResult.model_validate(
        body.model_dump(exclude={"event_id", "risk_code"})
    )
    return await alert_manager.create_alert(db, org_id, body.event_id, risk, classification)


@router.get("/alerts", response_model=list[AlertResponse])
async def list_alerts(
    status: Optional[AlertStatus] = Query(default=None),
    risk_code: Optional[str] = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await alert_manager.list_alerts(
        db, org_id, status=status, risk_code=risk_code, offset=offset, limit=limit
    )


@router.post("/alerts/batch-apply", response_model=BatchResult)
async def batch_apply(
    body: BatchApplyRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    """Partial failures come back in the body; only a total failure is an error."""
    result = await alert_manager.batch_apply(
        session_factory, org_id, body.alert_ids, notes=body.notes, actor=actor
    )
    return result.raise_if_total_failure("batch_apply")


@router.post("/alerts/bulk-delete", response_model=BatchResult)
async def bulk_delete(
    body: BulkDeleteRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    org_id: uuid.UUID = Depends(get_org_id),
):
    result = await alert_manager.bulk_delete(session_factory, org_id, body.alert_ids)
    return result.raise_if_total_failure("bulk_delete")


@router.get("/alerts/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await alert_manager.get_alert(db, org_id, alert_id)


@router.post("/alerts/{alert_id}/accept", response_model=AlertResponse)
async def accept_alert(
    alert_id: uuid.UUID,
    body: Optional[ReviewRequest] = None,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    notes = body.notes if body else None
    return await alert_manager.accept(db, org_id, alert_id, notes=notes, actor=actor)


@router.post("/alerts/{alert_id}/reject", response_model=AlertResponse)
async def reject_alert(
    alert_id: uuid.UUID,
    body: Optional[ReviewRequest] = None,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    notes = body.notes if body else None
    return await alert_manager.reject(db, org_id, alert_id, notes=notes, actor=actor)


@router.post("/alerts/{alert_id}/apply", response_model=AlertResponse)
async def apply_alert(
    alert_id: uuid.UUID,
    body: Optional[ReviewRequest] = None,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    notes = body.notes if body else None
    return await alert_manager.apply(db, org_id, alert_id, notes=notes, actor=actor)


@router.post("/alerts/{alert_id}/undo", response_model=AlertResponse)
async def undo_alert(
    alert_id: uuid.UUID,
    body: Optional[UndoRequest] = None,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    reason = body.reason if body else None
    return await alert_manager.undo(db, org_id, alert_id, reason=reason, actor=actor)
