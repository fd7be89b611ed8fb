"""Treatment log (audit trail) endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.api.deps import get_actor, get_db, get_org_id
from riskintel.treatment.log import treatment_log
from riskintel.treatment.schemas import ChainReport, TreatmentLogResponse

router = APIRouter(prefix="/api/v1/treatment-log", tags=["treatment-log"])


@router.get("", response_model=list[TreatmentLogResponse])
async def get_log(
    risk_code: Optional[str] = Query(default=None),
    alert_id: Optional[uuid.UUID] = Query(default=None),
    include_archived: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    """Entries newest-first; archived entries only on request. Full history unless paged."""
    return await treatment_log.get_log(
        db,
        org_id,
        risk_code=risk_code,
        include_archived=include_archived,
        alert_id=alert_id,
        limit=limit,
        offset=offset,
    )


@router.get("/verify", response_model=ChainReport)
async def verify_chain(
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await treatment_log.verify_chain(db, org_id)


@router.post("/{log_id}/archive", response_model=TreatmentLogResponse)
async def archive_entry(
    log_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
    actor: Optional[str] = Depends(get_actor),
):
    return await treatment_log.archive(db, org_id, log_id, archived_by=actor)
