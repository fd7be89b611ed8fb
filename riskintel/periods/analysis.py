"""
Period Analytics.

Pure summaries over snapshot rows plus a thin service that loads them.
A snapshot's level is taken from its residual score, falling back to the
inherent score when no residual was recorded.
"""

import uuid
from collections import Counter
from typing import Iterable, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.db.models import RiskHistorySnapshot
from riskintel.periods.schemas import (
    MigrationReport,
    Period,
    PeriodComparison,
    PeriodTrendData,
    RiskChange,
    RiskFieldDelta,
    RiskMigration,
)
from riskintel.periods.store import PeriodSnapshotStore, snapshot_store
from riskintel.scoring.levels import RiskLevel, is_de_escalation, is_escalation, level_for_score

logger = structlog.get_logger(__name__)

COMPARED_FIELDS = (
    "risk_title",
    "category",
    "division",
    "department",
    "owner",
    "status",
    "is_priority",
    "likelihood_inherent",
    "impact_inherent",
    "score_inherent",
    "residual_likelihood",
    "residual_impact",
    "residual_score",
)


def effective_score(snapshot) -> int:
    return snapshot.residual_score or snapshot.score_inherent


def snapshot_level(snapshot) -> RiskLevel:
    return level_for_score(effective_score(snapshot))


def _avg(values: list[int]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def summarize_period(period: Period, snapshots: Sequence) -> PeriodTrendData:
    levels = Counter(snapshot_level(s).value for s in snapshots)
    return PeriodTrendData(
        period=str(period),
        period_year=period.year,
        period_quarter=period.quarter,
        total_risks=len(snapshots),
        by_level={level.value: levels.get(level.value, 0) for level in RiskLevel},
        by_status=dict(Counter(s.status for s in snapshots)),
        avg_inherent_score=_avg([s.score_inherent for s in snapshots]),
        avg_residual_score=_avg([effective_score(s) for s in snapshots]),
    )


def find_migrations(
    period_from: Period,
    period_to: Period,
    before: Iterable,
    after: Iterable,
) -> MigrationReport:
    """Risks present in both periods whose level changed."""
    earlier = {s.risk_code: s for s in before}
    report = MigrationReport(period_from=str(period_from), period_to=str(period_to))

    for snap in sorted(after, key=lambda s: s.risk_code):
        old = earlier.get(snap.risk_code)
        if old is None:
            continue
        from_level, to_level = snapshot_level(old), snapshot_level(snap)
        if from_level == to_level:
            continue

        if is_escalation(from_level, to_level):
            direction = "escalated"
        elif is_de_escalation(from_level, to_level):
            direction = "de-escalated"
        else:
            direction = "shifted"

        migration = RiskMigration(
            risk_code=snap.risk_code,
            risk_title=snap.risk_title,
            from_level=from_level.value,
            to_level=to_level.value,
            from_score=effective_score(old),
            to_score=effective_score(snap),
            direction=direction,
        )
        report.migrations.append(migration)
        if direction == "escalated":
            report.escalated.append(migration)
        elif direction == "de-escalated":
            report.de_escalated.append(migration)
    return report


def compare_periods(
    period_from: Period,
    period_to: Period,
    before: Sequence,
    after: Sequence,
) -> PeriodComparison:
    earlier = {s.risk_code: s for s in before}
    later = {s.risk_code: s for s in after}

    changes: list[RiskChange] = []
    for code in sorted(set(earlier) & set(later)):
        old, new = earlier[code], later[code]
        deltas = [
            RiskFieldDelta(field=f, before=getattr(old, f), after=getattr(new, f))
            for f in COMPARED_FIELDS
            if getattr(old, f) != getattr(new, f)
        ]
        if not deltas:
            continue
        changes.append(RiskChange(
            risk_code=code,
            risk_title=new.risk_title,
            likelihood_change=new.likelihood_inherent - old.likelihood_inherent,
            impact_change=new.impact_inherent - old.impact_inherent,
            score_change=new.score_inherent - old.score_inherent,
            residual_score_change=effective_score(new) - effective_score(old),
            old_status=old.status,
            new_status=new.status,
            fields=deltas,
        ))

    inh_from = _avg([s.score_inherent for s in before])
    inh_to = _avg([s.score_inherent for s in after])
    res_from = _avg([effective_score(s) for s in before])
    res_to = _avg([effective_score(s) for s in after])
    return PeriodComparison(
        period_from=str(period_from),
        period_to=str(period_to),
        risk_count_from=len(before),
        risk_count_to=len(after),
        risk_count_change=len(after) - len(before),
        new_risks=sorted(set(later) - set(earlier)),
        closed_risks=sorted(set(earlier) - set(later)),
        risk_changes=changes,
        avg_inherent_from=inh_from,
        avg_inherent_to=inh_to,
        avg_inherent_change=round(inh_to - inh_from, 1),
        avg_residual_from=res_from,
        avg_residual_to=res_to,
        avg_residual_change=round(res_to - res_from, 1),
    )


class PeriodAnalytics:
    """Loads committed snapshots and runs the pure analytics over them."""

    def __init__(self, store: PeriodSnapshotStore = snapshot_store):
        self.store = store

    async def get_period_trends(
        self, db: AsyncSession, org_id: uuid.UUID
    ) -> list[PeriodTrendData]:
        commits = await self.store.list_commits(db, org_id)
        if not commits:
            return []
        result = await db.execute(
            select(RiskHistorySnapshot).where(RiskHistorySnapshot.organization_id == org_id)
        )
        by_commit: dict[uuid.UUID, list[RiskHistorySnapshot]] = {}
        for snap in result.scalars().all():
            by_commit.setdefault(snap.commit_id, []).append(snap)

        return [
            summarize_period(
                Period(c.period_year, c.period_quarter), by_commit.get(c.id, [])
            )
            for c in commits
        ]

    async def analyze_migrations(
        self, db: AsyncSession, org_id: uuid.UUID, period_from: Period, period_to: Period
    ) -> MigrationReport:
        before = await self.store.get_history_for_period(db, org_id, period_from)
        after = await self.store.get_history_for_period(db, org_id, period_to)
        report = find_migrations(period_from, period_to, before, after)
        logger.info(
            "migrations_analyzed",
            org_id=str(org_id),
            period_from=str(period_from),
            period_to=str(period_to),
            migrations=len(report.migrations),
            escalated=len(report.escalated),
            de_escalated=len(report.de_escalated),
        )
        return report

    async def compare_snapshots(
        self, db: AsyncSession, org_id: uuid.UUID, period_from: Period, period_to: Period
    ) -> PeriodComparison:
        before = await self.store.get_history_for_period(db, org_id, period_from)
        after = await self.store.get_history_for_period(db, org_id, period_to)
        return compare_periods(period_from, period_to, before, after)


period_analytics = PeriodAnalytics()
