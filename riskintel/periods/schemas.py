"""
Period value type and snapshot/analytics schemas.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from riskintel.db.compat import utcnow
from riskintel.errors import InvalidPeriodError

_QUARTER_FIRST = re.compile(r"^Q([1-4])\s+(\d{4})$", re.IGNORECASE)
_YEAR_FIRST = re.compile(r"^(\d{4})\s*-\s*Q([1-4])$", re.IGNORECASE)


@dataclass(frozen=True, order=True)
class Period:
    """A calendar quarter. Orders chronologically."""
    year: int
    quarter: int

    def __post_init__(self):
        if not 1 <= self.quarter <= 4 or not 1900 <= self.year <= 9999:
            raise InvalidPeriodError(f"{self.year}-Q{self.quarter}")

    @classmethod
    def parse(cls, value: str) -> "Period":
        """Accepts ``"Q3 2025"`` and ``"2025-Q3"``."""
        text = (value or "").strip()
        match = _QUARTER_FIRST.match(text)
        if match:
            return cls(year=int(match.group(2)), quarter=int(match.group(1)))
        match = _YEAR_FIRST.match(text)
        if match:
            return cls(year=int(match.group(1)), quarter=int(match.group(2)))
        raise InvalidPeriodError(value)

    @classmethod
    def current(cls, now: Optional[datetime] = None) -> "Period":
        now = now or utcnow()
        return cls(year=now.year, quarter=(now.month - 1) // 3 + 1)

    def next(self) -> "Period":
        if self.quarter == 4:
            return Period(self.year + 1, 1)
        return Period(self.year, self.quarter + 1)

    def previous(self) -> "Period":
        if self.quarter == 1:
            return Period(self.year - 1, 4)
        return Period(self.year, self.quarter - 1)

    def __str__(self) -> str:
        return f"Q{self.quarter} {self.year}"


# ── Commits & snapshots ────────────────────────────────────────────────


class CommitRequest(BaseModel):
    period: Optional[str] = None     # Defaults to the active period
    notes: Optional[str] = None


class PeriodCommitResponse(BaseModel):
    id: uuid.UUID
    period_year: int
    period_quarter: int
    committed_at: datetime
    committed_by: Optional[str]
    risks_count: int
    active_risks_count: int
    closed_risks_count: int
    controls_count: int
    residual_formula: str
    notes: Optional[str]

    model_config = {"from_attributes": True}


class RiskSnapshotResponse(BaseModel):
    id: uuid.UUID
    risk_id: uuid.UUID
    period_year: int
    period_quarter: int
    committed_at: datetime
    risk_code: str
    risk_title: str
    category: Optional[str]
    division: Optional[str]
    department: Optional[str]
    owner: Optional[str]
    status: str
    is_priority: bool
    likelihood_inherent: int
    impact_inherent: int
    score_inherent: int
    residual_likelihood: int
    residual_impact: int
    residual_score: int
    residual_formula: str
    controls_count: int

    model_config = {"from_attributes": True}


class ActivePeriodResponse(BaseModel):
    current_period: str
    previous_period: Optional[str] = None
    period_started_at: Optional[datetime] = None


class SetActivePeriodRequest(BaseModel):
    period: str


# ── Analytics ──────────────────────────────────────────────────────────


class PeriodTrendData(BaseModel):
    period: str
    period_year: int
    period_quarter: int
    total_risks: int
    by_level: dict[str, int]
    by_status: dict[str, int]
    avg_inherent_score: float
    avg_residual_score: float


class RiskMigration(BaseModel):
    risk_code: str
    risk_title: str
    from_level: str
    to_level: str
    from_score: int
    to_score: int
    direction: str                  # escalated | de-escalated | shifted


class MigrationReport(BaseModel):
    period_from: str
    period_to: str
    migrations: list[RiskMigration] = Field(default_factory=list)
    escalated: list[RiskMigration] = Field(default_factory=list)
    de_escalated: list[RiskMigration] = Field(default_factory=list)


class RiskFieldDelta(BaseModel):
    field: str
    before: Any
    after: Any


class RiskChange(BaseModel):
    risk_code: str
    risk_title: str
    likelihood_change: int
    impact_change: int
    score_change: int
    residual_score_change: int
    old_status: str
    new_status: str
    fields: list[RiskFieldDelta] = Field(default_factory=list)


class PeriodComparison(BaseModel):
    period_from: str
    period_to: str
    risk_count_from: int
    risk_count_to: int
    risk_count_change: int
    new_risks: list[str] = Field(default_factory=list)       # risk codes
    closed_risks: list[str] = Field(default_factory=list)    # risk codes
    risk_changes: list[RiskChange] = Field(default_factory=list)
    avg_inherent_from: float
    avg_inherent_to: float
    avg_inherent_change: float
    avg_residual_from: float
    avg_residual_to: float
    avg_residual_change: float
