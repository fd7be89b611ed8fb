"""
Intelligence Schemas.

Alerts, classifier results, external events, and batch outcomes.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from riskintel.errors import BatchFailedError


# ── Enums ──────────────────────────────────────────────────────────────


class AlertStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    APPLIED = "applied"


# ── Classifier ─────────────────────────────────────────────────────────


class ClassificationResult(BaseModel):
    """Structured output of the external relevance classifier."""
    is_relevant: bool
    confidence_score: int = Field(ge=0, le=100)
    suggested_likelihood_change: Optional[int] = None
    impact_change: Optional[int] = None
    reasoning: Optional[str] = None
    suggested_controls: list[str] = Field(default_factory=list)
    impact_assessment: Optional[str] = None


# ── Events ─────────────────────────────────────────────────────────────


class ExternalEventCreate(BaseModel):
    source: str = Field(min_length=1, max_length=255)
    event_type: str = Field(min_length=1, max_length=100)
    title: str = Field(min_length=1, max_length=500)
    summary: Optional[str] = None
    url: Optional[str] = Field(default=None, max_length=1000)
    published_date: datetime


class ExternalEventResponse(BaseModel):
    id: uuid.UUID
    source: str
    event_type: str
    title: str
    summary: Optional[str]
    url: Optional[str]
    published_date: datetime
    fetched_at: datetime
    relevance_checked: bool

    model_config = {"from_attributes": True}


# ── Alerts ─────────────────────────────────────────────────────────────


class AlertCreate(ClassificationResult):
    event_id: uuid.UUID
    risk_code: str = Field(min_length=1, max_length=50)


class AlertResponse(BaseModel):
    id: uuid.UUID
    event_id: uuid.UUID
    risk_id: uuid.UUID
    risk_code: str
    is_relevant: bool
    confidence_score: int
    suggested_likelihood_change: Optional[int]
    impact_change: Optional[int]
    reasoning: Optional[str]
    suggested_controls: list[str]
    impact_assessment: Optional[str]
    status: AlertStatus
    applied_to_risk: bool
    user_notes: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    applied_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewRequest(BaseModel):
    notes: Optional[str] = None


class UndoRequest(BaseModel):
    reason: Optional[str] = None


class BatchApplyRequest(BaseModel):
    alert_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)
    notes: dict[str, str] = Field(default_factory=dict)   # alert_id -> notes


class BulkDeleteRequest(BaseModel):
    alert_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)


# ── Batch outcomes ─────────────────────────────────────────────────────


class BatchItemError(BaseModel):
    item_id: str
    message: str


class BatchResult(BaseModel):
    """
    Partial-failure outcome of a batch operation.

    Individual failures never abort the batch; they are collected here.
    """
    success_count: int = 0
    error_count: int = 0
    errors: list[BatchItemError] = Field(default_factory=list)

    def record_success(self) -> None:
        self.success_count += 1

    def record_error(self, item_id: str, message: str) -> None:
        self.error_count += 1
        self.errors.append(BatchItemError(item_id=item_id, message=message))

    def raise_if_total_failure(self, operation: str) -> "BatchResult":
        """Raise BatchFailedError only when nothing succeeded."""
        if self.success_count == 0 and self.error_count > 0:
            raise BatchFailedError(operation, [e.model_dump() for e in self.errors])
        return self


class ScanResult(BaseModel):
    events_checked: int = 0
    events_deferred: int = 0        # Left unchecked after a classifier failure
    pairs_classified: int = 0
    alerts_created: int = 0
    failures: list[BatchItemError] = Field(default_factory=list)
