"""Pydantic schemas for risks and controls."""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from riskintel.scoring.residual import ControlTarget


class RiskStatus(StrEnum):
    IDENTIFIED = "IDENTIFIED"
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    MONITORING = "MONITORING"
    CLOSED = "CLOSED"


# ── Controls ───────────────────────────────────────────────────────────


class ControlCreate(BaseModel):
    control_code: Optional[str] = Field(default=None, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    target: ControlTarget
    design_score: int = Field(default=0, ge=0, le=3)
    implementation_score: int = Field(default=0, ge=0, le=3)
    monitoring_score: int = Field(default=0, ge=0, le=3)
    evaluation_score: int = Field(default=0, ge=0, le=3)


class ControlUpdate(BaseModel):
    control_code: Optional[str] = Field(default=None, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    target: Optional[ControlTarget] = None
    design_score: Optional[int] = Field(default=None, ge=0, le=3)
    implementation_score: Optional[int] = Field(default=None, ge=0, le=3)
    monitoring_score: Optional[int] = Field(default=None, ge=0, le=3)
    evaluation_score: Optional[int] = Field(default=None, ge=0, le=3)


class ControlResponse(BaseModel):
    id: uuid.UUID
    risk_id: uuid.UUID
    control_code: Optional[str]
    name: str
    description: Optional[str]
    target: str
    design_score: int
    implementation_score: int
    monitoring_score: int
    evaluation_score: int
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Risks ──────────────────────────────────────────────────────────────


class RiskCreate(BaseModel):
    risk_code: str = Field(min_length=1, max_length=50)
    risk_title: str = Field(min_length=1, max_length=255)
    risk_description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    division: Optional[str] = Field(default=None, max_length=100)
    department: Optional[str] = Field(default=None, max_length=100)
    owner: Optional[str] = Field(default=None, max_length=255)
    status: RiskStatus = RiskStatus.OPEN
    is_priority: bool = False
    likelihood_inherent: int = Field(ge=1)
    impact_inherent: int = Field(ge=1)


class RiskUpdate(BaseModel):
    """Partial update. ``expected_version`` is the compare-and-set marker."""

    expected_version: int = Field(ge=1)
    risk_title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    risk_description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    division: Optional[str] = Field(default=None, max_length=100)
    department: Optional[str] = Field(default=None, max_length=100)
    owner: Optional[str] = Field(default=None, max_length=255)
    is_priority: Optional[bool] = None
    likelihood_inherent: Optional[int] = Field(default=None, ge=1)
    impact_inherent: Optional[int] = Field(default=None, ge=1)


class StatusChange(BaseModel):
    status: RiskStatus
    expected_version: int = Field(ge=1)


class RiskFilters(BaseModel):
    status: Optional[RiskStatus] = None
    category: Optional[str] = None
    division: Optional[str] = None
    department: Optional[str] = None
    is_priority: Optional[bool] = None


class RiskResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    risk_code: str
    risk_title: str
    risk_description: Optional[str]
    category: Optional[str]
    division: Optional[str]
    department: Optional[str]
    owner: Optional[str]
    status: str
    is_priority: bool
    likelihood_inherent: int
    impact_inherent: int
    score_inherent: int
    residual_likelihood: Optional[int]
    residual_impact: Optional[int]
    residual_score: Optional[int]
    residual_formula: Optional[str]
    last_residual_calc: Optional[datetime]
    intel_baseline_likelihood: Optional[int]
    intel_baseline_impact: Optional[int]
    last_intelligence_check: Optional[datetime]
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RiskDetailResponse(RiskResponse):
    controls: list[ControlResponse] = []
