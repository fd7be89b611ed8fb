"""Treatment log schemas."""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class TreatmentAction(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"
    APPLY = "apply"
    UNDO = "undo"


class TreatmentLogResponse(BaseModel):
    id: uuid.UUID
    sequence: int
    alert_id: uuid.UUID
    risk_code: str
    action_taken: str
    previous_likelihood: Optional[int]
    new_likelihood: Optional[int]
    previous_impact: Optional[int]
    new_impact: Optional[int]
    notes: Optional[str]
    applied_by: Optional[str]
    applied_at: datetime
    deleted_at: Optional[datetime]
    deleted_by: Optional[str]
    entry_hash: str

    model_config = {"from_attributes": True}


class ChainBreak(BaseModel):
    entry_id: str
    sequence: int
    issue: str                      # previous_hash_mismatch | entry_hash_mismatch
    expected: Optional[str] = None
    actual: Optional[str] = None


class ChainReport(BaseModel):
    status: str                     # empty | intact | broken
    total_entries: int
    chain_intact: bool
    breaks_found: int = 0
    breaks: list[ChainBreak] = Field(default_factory=list)
