"""Risk register and control endpoints."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.api.deps import get_db, get_org_id
from riskintel.risks.schemas import (
    ControlCreate,
    ControlResponse,
    ControlUpdate,
    RiskCreate,
    RiskDetailResponse,
    RiskFilters,
    RiskResponse,
    RiskStatus,
    RiskUpdate,
    StatusChange,
)
from riskintel.risks.service import risk_service

router = APIRouter(prefix="/api/v1/risks", tags=["risks"])
controls_router = APIRouter(prefix="/api/v1/controls", tags=["controls"])


@router.post("", response_model=RiskDetailResponse, status_code=201)
async def create_risk(
    body: RiskCreate,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.create_risk(db, org_id, body)


@router.get("", response_model=list[RiskResponse])
async def list_risks(
    status: Optional[RiskStatus] = Query(default=None),
    category: Optional[str] = Query(default=None),
    division: Optional[str] = Query(default=None),
    department: Optional[str] = Query(default=None),
    is_priority: Optional[bool] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    filters = RiskFilters(
        status=status,
        category=category,
        division=division,
        department=department,
        is_priority=is_priority,
    )
    return await risk_service.list_risks(db, org_id, filters)


@router.get("/{risk_code}", response_model=RiskDetailResponse)
async def get_risk(
    risk_code: str,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.get_risk(db, org_id, risk_code)


@router.patch("/{risk_code}", response_model=RiskDetailResponse)
async def update_risk(
    risk_code: str,
    body: RiskUpdate,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.update_risk(db, org_id, risk_code, body)


@router.post("/{risk_code}/status", response_model=RiskDetailResponse)
async def set_risk_status(
    risk_code: str,
    body: StatusChange,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.set_status(db, org_id, risk_code, body.status, body.expected_version)


@router.post("/{risk_code}/recalculate", response_model=RiskDetailResponse)
async def recalculate_residual(
    risk_code: str,
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.recalculate_residual(db, org_id, risk_code)


@router.post("/{risk_code}/controls", response_model=ControlResponse, status_code=201)
async def add_control(
    risk_code: str,
    body: ControlCreate,
    expected_version: Optional[int] = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.add_control(db, org_id, risk_code, body, expected_version)


@controls_router.patch("/{control_id}", response_model=ControlResponse)
async def update_control(
    control_id: uuid.UUID,
    body: ControlUpdate,
    expected_version: Optional[int] = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.update_control(db, org_id, control_id, body, expected_version)


@controls_router.delete("/{control_id}", response_model=RiskDetailResponse)
async def remove_control(
    control_id: uuid.UUID,
    expected_version: Optional[int] = Query(default=None, ge=1),
    db: AsyncSession = Depends(get_db),
    org_id: uuid.UUID = Depends(get_org_id),
):
    return await risk_service.remove_control(db, org_id, control_id, expected_version)
