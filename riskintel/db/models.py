"""
RiskIntel SQLAlchemy Models.

Uses compatibility types for SQLite (dev/test) + PostgreSQL (prod).
Every table is tenant-scoped by organization_id.

Write rules enforced here (not only in services):
- RiskHistorySnapshot and PeriodCommit rows are frozen once flushed.
- TreatmentLogEntry rows are append-only; only the archive fields may change.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from riskintel.db.compat import GUID, JSONType, utcnow
from riskintel.db.engine import Base
from riskintel.errors import ImmutableRecordError


def _genuuid():
    return uuid.uuid4()


# ──────────────────────────────────────────────────────────────────────────────
# 1.1 Tenant
# ──────────────────────────────────────────────────────────────────────────────


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    matrix_size: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    risks: Mapped[list["Risk"]] = relationship(back_populates="organization")


class ActivePeriod(Base):
    """The quarter an organization is currently working in."""

    __tablename__ = "active_periods"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), primary_key=True
    )
    current_period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_period_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_period_year: Mapped[Optional[int]] = mapped_column(Integer)
    previous_period_quarter: Mapped[Optional[int]] = mapped_column(Integer)
    period_started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 1.2 Risk Register
# ──────────────────────────────────────────────────────────────────────────────


class Risk(Base):
    __tablename__ = "risks"
    __table_args__ = (
        UniqueConstraint("organization_id", "risk_code", name="uq_risks_org_code"),
        Index("ix_risks_org_status", "organization_id", "status"),
        CheckConstraint("likelihood_inherent >= 1", name="ck_risks_likelihood_min"),
        CheckConstraint("impact_inherent >= 1", name="ck_risks_impact_min"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    risk_code: Mapped[str] = mapped_column(String(50), nullable=False)
    risk_title: Mapped[str] = mapped_column(String(255), nullable=False)
    risk_description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    division: Mapped[Optional[str]] = mapped_column(String(100))
    department: Mapped[Optional[str]] = mapped_column(String(100))
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="OPEN")
    is_priority: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Inherent (score is derived, see property)
    likelihood_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    impact_inherent: Mapped[int] = mapped_column(Integer, nullable=False)

    # Cached residual: written together by the register service
    residual_likelihood: Mapped[Optional[int]] = mapped_column(Integer)
    residual_impact: Mapped[Optional[int]] = mapped_column(Integer)
    residual_score: Mapped[Optional[int]] = mapped_column(Integer)
    residual_formula: Mapped[Optional[str]] = mapped_column(String(50))
    last_residual_calc: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Intelligence bookkeeping: inherent values before any applied alert
    intel_baseline_likelihood: Mapped[Optional[int]] = mapped_column(Integer)
    intel_baseline_impact: Mapped[Optional[int]] = mapped_column(Integer)
    last_intelligence_check: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Compare-and-set marker
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    organization: Mapped["Organization"] = relationship(back_populates="risks")
    controls: Mapped[list["Control"]] = relationship(
        back_populates="risk", order_by="Control.created_at"
    )

    @property
    def score_inherent(self) -> int:
        return self.likelihood_inherent * self.impact_inherent


class Control(Base):
    __tablename__ = "controls"
    __table_args__ = (
        Index("ix_controls_risk", "risk_id"),
        CheckConstraint("target IN ('Likelihood', 'Impact')", name="ck_controls_target"),
        CheckConstraint("design_score BETWEEN 0 AND 3", name="ck_controls_design"),
        CheckConstraint("implementation_score BETWEEN 0 AND 3", name="ck_controls_implementation"),
        CheckConstraint("monitoring_score BETWEEN 0 AND 3", name="ck_controls_monitoring"),
        CheckConstraint("evaluation_score BETWEEN 0 AND 3", name="ck_controls_evaluation"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    risk_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("risks.id"), nullable=False)
    control_code: Mapped[Optional[str]] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target: Mapped[str] = mapped_column(String(20), nullable=False)
    design_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    implementation_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monitoring_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    evaluation_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    risk: Mapped["Risk"] = relationship(back_populates="controls")


# ──────────────────────────────────────────────────────────────────────────────
# 1.3 Intelligence
# ──────────────────────────────────────────────────────────────────────────────


class ExternalEvent(Base):
    """Immutable fact ingested from an outside feed."""

    __tablename__ = "external_events"
    __table_args__ = (
        Index("ix_external_events_org_checked", "organization_id", "relevance_checked"),
        Index("ix_external_events_org_source_title", "organization_id", "source", "title"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    url: Mapped[Optional[str]] = mapped_column(String(1000))
    published_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    relevance_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class RiskIntelligenceAlert(Base):
    """Correlates one ExternalEvent to one Risk."""

    __tablename__ = "risk_intelligence_alerts"
    __table_args__ = (
        UniqueConstraint("event_id", "risk_id", name="uq_alerts_event_risk"),
        Index("ix_alerts_org_status", "organization_id", "status"),
        Index("ix_alerts_risk_status", "risk_id", "status"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'applied')",
            name="ck_alerts_status",
        ),
        CheckConstraint(
            "confidence_score BETWEEN 0 AND 100", name="ck_alerts_confidence"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("external_events.id"), nullable=False
    )
    risk_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("risks.id"), nullable=False)
    risk_code: Mapped[str] = mapped_column(String(50), nullable=False)

    # Classifier output
    is_relevant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_likelihood_change: Mapped[Optional[int]] = mapped_column(Integer)
    impact_change: Mapped[Optional[int]] = mapped_column(Integer)
    reasoning: Mapped[Optional[str]] = mapped_column(Text)
    suggested_controls: Mapped[list] = mapped_column(JSONType(), nullable=False, default=list)
    impact_assessment: Mapped[Optional[str]] = mapped_column(Text)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    user_notes: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    event: Mapped["ExternalEvent"] = relationship()

    @property
    def applied_to_risk(self) -> bool:
        return self.status == "applied"


# ──────────────────────────────────────────────────────────────────────────────
# 1.4 Audit
# ──────────────────────────────────────────────────────────────────────────────


class TreatmentLogEntry(Base):
    """
    Append-only audit record of an alert lifecycle action.

    NO UPDATE except archiving, NO DELETE. Ever.
    Chain hash: each entry includes the hash of the previous entry
    (per organization, by sequence) for tamper detection.
    """

    __tablename__ = "treatment_log"
    __table_args__ = (
        UniqueConstraint("organization_id", "sequence", name="uq_treatment_log_org_seq"),
        Index("ix_treatment_log_org_risk", "organization_id", "risk_code"),
        Index("ix_treatment_log_alert", "alert_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    # No FK: entries outlive alerts removed by bulk delete
    alert_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    risk_code: Mapped[str] = mapped_column(String(50), nullable=False)
    action_taken: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_likelihood: Mapped[Optional[int]] = mapped_column(Integer)
    new_likelihood: Mapped[Optional[int]] = mapped_column(Integer)
    previous_impact: Mapped[Optional[int]] = mapped_column(Integer)
    new_impact: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    applied_by: Mapped[Optional[str]] = mapped_column(String(255))
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Soft delete (archive)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(255))

    # Tamper detection
    previous_hash: Mapped[Optional[str]] = mapped_column(String(64))
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)


# ──────────────────────────────────────────────────────────────────────────────
# 1.5 Period Snapshots
# ──────────────────────────────────────────────────────────────────────────────


class PeriodCommit(Base):
    __tablename__ = "period_commits"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "period_year", "period_quarter",
            name="uq_period_commits_org_period",
        ),
        CheckConstraint("period_quarter BETWEEN 1 AND 4", name="ck_period_commits_quarter"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    committed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    committed_by: Mapped[Optional[str]] = mapped_column(String(255))
    risks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_risks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closed_risks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    controls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    residual_formula: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    snapshots: Mapped[list["RiskHistorySnapshot"]] = relationship(
        back_populates="commit", order_by="RiskHistorySnapshot.risk_code"
    )


class RiskHistorySnapshot(Base):
    """Frozen copy of a Risk at period commit time."""

    __tablename__ = "risk_history"
    __table_args__ = (
        UniqueConstraint("commit_id", "risk_code", name="uq_risk_history_commit_code"),
        Index("ix_risk_history_org_period", "organization_id", "period_year", "period_quarter"),
        Index("ix_risk_history_org_code", "organization_id", "risk_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("organizations.id"), nullable=False
    )
    commit_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("period_commits.id"), nullable=False
    )
    risk_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    committed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Flattened risk fields
    risk_code: Mapped[str] = mapped_column(String(50), nullable=False)
    risk_title: Mapped[str] = mapped_column(String(255), nullable=False)
    risk_description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    division: Mapped[Optional[str]] = mapped_column(String(100))
    department: Mapped[Optional[str]] = mapped_column(String(100))
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    is_priority: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    likelihood_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    impact_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    score_inherent: Mapped[int] = mapped_column(Integer, nullable=False)
    residual_likelihood: Mapped[int] = mapped_column(Integer, nullable=False)
    residual_impact: Mapped[int] = mapped_column(Integer, nullable=False)
    residual_score: Mapped[int] = mapped_column(Integer, nullable=False)
    residual_formula: Mapped[str] = mapped_column(String(50), nullable=False)
    controls_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snapshot_data: Mapped[dict] = mapped_column(JSONType(), nullable=False, default=dict)

    commit: Mapped["PeriodCommit"] = relationship(back_populates="snapshots")


# ──────────────────────────────────────────────────────────────────────────────
# Write guards
# ──────────────────────────────────────────────────────────────────────────────

_TREATMENT_MUTABLE_FIELDS = frozenset({"deleted_at", "deleted_by"})


def _changed_fields(target) -> list[str]:
    state = inspect(target)
    return [
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]


@event.listens_for(PeriodCommit, "before_update")
@event.listens_for(RiskHistorySnapshot, "before_update")
def _reject_snapshot_update(mapper, connection, target):
    raise ImmutableRecordError(type(target).__name__, _changed_fields(target))


@event.listens_for(TreatmentLogEntry, "before_update")
def _reject_treatment_rewrite(mapper, connection, target):
    forbidden = [f for f in _changed_fields(target) if f not in _TREATMENT_MUTABLE_FIELDS]
    if forbidden:
        raise ImmutableRecordError("TreatmentLogEntry", forbidden)
