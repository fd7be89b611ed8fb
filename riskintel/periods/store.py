"""
Period Snapshot Store.

Commits freeze the whole register for a quarter: one PeriodCommit plus one
RiskHistorySnapshot per risk, written in a single transaction. A period can
be committed once; the unique (organization, year, quarter) constraint
settles races the up-front check cannot see.
"""

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.config import settings
from riskintel.db.compat import utcnow
from riskintel.db.models import ActivePeriod, PeriodCommit, Risk, RiskHistorySnapshot
from riskintel.db.repositories.risks import org_repo, risk_repo
from riskintel.errors import NotFoundError, PeriodAlreadyCommittedError, ValidationError
from riskintel.periods.schemas import Period
from riskintel.risks.schemas import RiskStatus
from riskintel.scoring.residual import ResidualFormula, compute_residual

logger = structlog.get_logger(__name__)


def _control_copy(risk: Risk) -> list[dict]:
    return [
        {
            "id": str(c.id),
            "control_code": c.control_code,
            "name": c.name,
            "target": c.target,
            "design_score": c.design_score,
            "implementation_score": c.implementation_score,
            "monitoring_score": c.monitoring_score,
            "evaluation_score": c.evaluation_score,
        }
        for c in risk.controls
    ]


class PeriodSnapshotStore:
    def __init__(self, formula: Optional[str] = None):
        self.formula = ResidualFormula(formula or settings.residual_formula)

    async def get_commit(
        self, db: AsyncSession, org_id: uuid.UUID, period: Period
    ) -> Optional[PeriodCommit]:
        result = await db.execute(
            select(PeriodCommit).where(
                PeriodCommit.organization_id == org_id,
                PeriodCommit.period_year == period.year,
                PeriodCommit.period_quarter == period.quarter,
            )
        )
        return result.scalar_one_or_none()

    async def list_commits(self, db: AsyncSession, org_id: uuid.UUID) -> Sequence[PeriodCommit]:
        """Commits oldest → newest."""
        result = await db.execute(
            select(PeriodCommit)
            .where(PeriodCommit.organization_id == org_id)
            .order_by(PeriodCommit.period_year, PeriodCommit.period_quarter)
        )
        return result.scalars().all()

    async def commit(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        period: Period,
        notes: Optional[str] = None,
        committed_by: Optional[str] = None,
    ) -> PeriodCommit:
        if await self.get_commit(db, org_id, period) is not None:
            raise PeriodAlreadyCommittedError(str(period))

        org = await org_repo.require(db, org_id)
        risks = await risk_repo.list_filtered(db, org_id)
        if not risks:
            raise ValidationError(
                "Cannot commit a period with an empty risk register",
                field="period",
                details={"period": str(period)},
            )

        now = utcnow()
        closed = sum(1 for r in risks if r.status == RiskStatus.CLOSED)
        commit = PeriodCommit(
            organization_id=org_id,
            period_year=period.year,
            period_quarter=period.quarter,
            committed_at=now,
            committed_by=committed_by,
            risks_count=len(risks),
            active_risks_count=len(risks) - closed,
            closed_risks_count=closed,
            controls_count=sum(len(r.controls) for r in risks),
            residual_formula=self.formula.value,
            notes=notes,
        )
        db.add(commit)
        try:
            await db.flush()
        except IntegrityError:
            raise PeriodAlreadyCommittedError(str(period))

        for risk in risks:
            residual = compute_residual(
                risk.likelihood_inherent,
                risk.impact_inherent,
                risk.controls,
                org.matrix_size,
                self.formula,
            )
            db.add(RiskHistorySnapshot(
                organization_id=org_id,
                commit_id=commit.id,
                risk_id=risk.id,
                period_year=period.year,
                period_quarter=period.quarter,
                committed_at=now,
                risk_code=risk.risk_code,
                risk_title=risk.risk_title,
                risk_description=risk.risk_description,
                category=risk.category,
                division=risk.division,
                department=risk.department,
                owner=risk.owner,
                status=risk.status,
                is_priority=risk.is_priority,
                likelihood_inherent=risk.likelihood_inherent,
                impact_inherent=risk.impact_inherent,
                score_inherent=risk.score_inherent,
                residual_likelihood=residual.likelihood,
                residual_impact=residual.impact,
                residual_score=residual.score,
                residual_formula=residual.formula.value,
                controls_count=len(risk.controls),
                snapshot_data={"controls": _control_copy(risk)},
            ))
        await db.flush()

        await self._advance(db, org_id, period)
        logger.info(
            "period_committed",
            org_id=str(org_id),
            period=str(period),
            risks=commit.risks_count,
            active=commit.active_risks_count,
            closed=commit.closed_risks_count,
            next_period=str(period.next()),
        )
        return commit

    async def get_history_for_period(
        self, db: AsyncSession, org_id: uuid.UUID, period: Period
    ) -> Sequence[RiskHistorySnapshot]:
        """Snapshots of a committed period, ordered by risk code."""
        commit = await self.get_commit(db, org_id, period)
        if commit is None:
            raise NotFoundError("PeriodCommit", str(period))
        result = await db.execute(
            select(RiskHistorySnapshot)
            .where(RiskHistorySnapshot.commit_id == commit.id)
            .order_by(RiskHistorySnapshot.risk_code)
        )
        return result.scalars().all()

    async def get_risk_timeline(
        self, db: AsyncSession, org_id: uuid.UUID, risk_code: str
    ) -> Sequence[RiskHistorySnapshot]:
        """Every snapshot of one risk, oldest period first."""
        result = await db.execute(
            select(RiskHistorySnapshot)
            .where(
                RiskHistorySnapshot.organization_id == org_id,
                RiskHistorySnapshot.risk_code == risk_code,
            )
            .order_by(RiskHistorySnapshot.period_year, RiskHistorySnapshot.period_quarter)
        )
        return result.scalars().all()

    # ── Active period ──────────────────────────────────────────────────

    async def get_active_period(
        self, db: AsyncSession, org_id: uuid.UUID
    ) -> tuple[Period, Optional[Period]]:
        """(current, previous). Defaults to the calendar quarter when unset."""
        row = await db.get(ActivePeriod, org_id)
        if row is None:
            return Period.current(), None
        previous = None
        if row.previous_period_year is not None:
            previous = Period(row.previous_period_year, row.previous_period_quarter)
        return Period(row.current_period_year, row.current_period_quarter), previous

    async def set_active_period(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        period: Period,
        previous: Optional[Period] = None,
    ) -> ActivePeriod:
        await org_repo.require(db, org_id)
        now = utcnow()
        row = await db.get(ActivePeriod, org_id)
        if row is None:
            row = ActivePeriod(organization_id=org_id)
            db.add(row)
        row.current_period_year = period.year
        row.current_period_quarter = period.quarter
        row.previous_period_year = previous.year if previous else None
        row.previous_period_quarter = previous.quarter if previous else None
        row.period_started_at = now
        row.updated_at = now
        await db.flush()
        logger.info("active_period_set", org_id=str(org_id), period=str(period))
        return row

    async def _advance(self, db: AsyncSession, org_id: uuid.UUID, committed: Period) -> None:
        await self.set_active_period(db, org_id, committed.next(), previous=committed)


snapshot_store = PeriodSnapshotStore()
