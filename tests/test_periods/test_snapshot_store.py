"""
Period snapshot store tests.

Tests: commit contents, one commit per period, immutability of committed
rows, snapshot isolation from later live edits, active period tracking.
"""

import pytest

from riskintel.errors import (
    ImmutableRecordError,
    NotFoundError,
    PeriodAlreadyCommittedError,
    ValidationError,
)
from riskintel.periods.schemas import Period
from riskintel.periods.store import snapshot_store
from riskintel.risks.schemas import RiskStatus, RiskUpdate
from riskintel.risks.service import risk_service
from tests.conftest import add_control, create_risk

Q1 = Period(2025, 1)
Q2 = Period(2025, 2)


async def _register(db, org_id):
    await create_risk(db, org_id, "R-001", likelihood=4, impact=5, category="Finance")
    await add_control(db, org_id, "R-001", target="Likelihood")
    await create_risk(db, org_id, "R-002", likelihood=2, impact=2, status=RiskStatus.CLOSED)


@pytest.mark.asyncio
class TestCommit:
    async def test_commit_freezes_register(self, db, org):
        await _register(db, org.id)
        commit = await snapshot_store.commit(db, org.id, Q1, notes="quarter close", committed_by="cro")

        assert (commit.period_year, commit.period_quarter) == (2025, 1)
        assert commit.risks_count == 2
        assert commit.active_risks_count == 1
        assert commit.closed_risks_count == 1
        assert commit.controls_count == 1
        assert commit.residual_formula == "multiplicative-v1"
        assert commit.committed_by == "cro"

        snapshots = await snapshot_store.get_history_for_period(db, org.id, Q1)
        assert [s.risk_code for s in snapshots] == ["R-001", "R-002"]
        first = snapshots[0]
        assert first.score_inherent == 20
        assert (first.residual_likelihood, first.residual_impact, first.residual_score) == (2, 5, 10)
        assert first.controls_count == 1
        assert first.snapshot_data["controls"][0]["target"] == "Likelihood"
        assert first.category == "Finance"
        assert all(s.commit_id == commit.id for s in snapshots)

    async def test_commit_advances_active_period(self, db, org):
        await _register(db, org.id)
        await snapshot_store.commit(db, org.id, Q1)
        current, previous = await snapshot_store.get_active_period(db, org.id)
        assert current == Q2
        assert previous == Q1

    async def test_second_commit_of_same_period_rejected(self, db, org):
        await _register(db, org.id)
        first = await snapshot_store.commit(db, org.id, Q1)

        await risk_service.update_risk(
            db, org.id, "R-002", RiskUpdate(expected_version=1, risk_title="Changed")
        )
        with pytest.raises(PeriodAlreadyCommittedError) as exc_info:
            await snapshot_store.commit(db, org.id, Q1)
        assert exc_info.value.status_code == 409

        commits = await snapshot_store.list_commits(db, org.id)
        assert [c.id for c in commits] == [first.id]
        snapshots = await snapshot_store.get_history_for_period(db, org.id, Q1)
        assert len(snapshots) == 2
        assert snapshots[1].risk_title == "Risk R-002"

    async def test_concurrent_commit_hits_unique_constraint(self, session_factory, org, monkeypatch):
        """Both writers pass the existence check; the database still keeps one commit."""
        async with session_factory() as first:
            await _register(first, org.id)
            winner = await snapshot_store.commit(first, org.id, Q1)
            await first.commit()

        async def not_yet_committed(db, org_id, period):
            return None

        monkeypatch.setattr(snapshot_store, "get_commit", not_yet_committed)
        async with session_factory() as second:
            with pytest.raises(PeriodAlreadyCommittedError) as exc_info:
                await snapshot_store.commit(second, org.id, Q1)
            assert exc_info.value.status_code == 409
            await second.rollback()
        monkeypatch.undo()

        async with session_factory() as check:
            commits = await snapshot_store.list_commits(check, org.id)
            assert [c.id for c in commits] == [winner.id]
            snapshots = await snapshot_store.get_history_for_period(check, org.id, Q1)
            assert len(snapshots) == 2

    async def test_empty_register_rejected(self, db, org):
        with pytest.raises(ValidationError):
            await snapshot_store.commit(db, org.id, Q1)
        assert await snapshot_store.list_commits(db, org.id) == []

    async def test_snapshot_unaffected_by_later_edits(self, db, org):
        await _register(db, org.id)
        await snapshot_store.commit(db, org.id, Q1)

        risk = await risk_service.get_risk(db, org.id, "R-001")
        await risk_service.update_risk(
            db, org.id, "R-001", RiskUpdate(expected_version=risk.version, likelihood_inherent=1)
        )
        snapshots = await snapshot_store.get_history_for_period(db, org.id, Q1)
        assert snapshots[0].likelihood_inherent == 4

    async def test_commits_listed_oldest_first(self, db, org):
        await _register(db, org.id)
        await snapshot_store.commit(db, org.id, Q2)
        await snapshot_store.commit(db, org.id, Q1)
        commits = await snapshot_store.list_commits(db, org.id)
        assert [(c.period_year, c.period_quarter) for c in commits] == [(2025, 1), (2025, 2)]


@pytest.mark.asyncio
class TestImmutability:
    async def test_snapshot_update_rejected(self, db, org):
        await _register(db, org.id)
        await snapshot_store.commit(db, org.id, Q1)
        snapshots = await snapshot_store.get_history_for_period(db, org.id, Q1)

        snapshots[0].likelihood_inherent = 1
        with pytest.raises(ImmutableRecordError):
            await db.flush()

    async def test_commit_update_rejected(self, db, org):
        await _register(db, org.id)
        commit = await snapshot_store.commit(db, org.id, Q1)
        commit.notes = "rewritten history"
        with pytest.raises(ImmutableRecordError):
            await db.flush()


@pytest.mark.asyncio
class TestReads:
    async def test_uncommitted_period(self, db, org):
        with pytest.raises(NotFoundError):
            await snapshot_store.get_history_for_period(db, org.id, Q1)

    async def test_timeline(self, db, org):
        await _register(db, org.id)
        await snapshot_store.commit(db, org.id, Q1)
        risk = await risk_service.get_risk(db, org.id, "R-001")
        await risk_service.update_risk(
            db, org.id, "R-001", RiskUpdate(expected_version=risk.version, impact_inherent=3)
        )
        await snapshot_store.commit(db, org.id, Q2)

        timeline = await snapshot_store.get_risk_timeline(db, org.id, "R-001")
        assert [(s.period_quarter, s.impact_inherent) for s in timeline] == [(1, 5), (2, 3)]

    async def test_history_is_tenant_scoped(self, db, org, other_org):
        await _register(db, org.id)
        await snapshot_store.commit(db, org.id, Q1)
        with pytest.raises(NotFoundError):
            await snapshot_store.get_history_for_period(db, other_org.id, Q1)

    async def test_active_period_defaults_to_calendar(self, db, org):
        current, previous = await snapshot_store.get_active_period(db, org.id)
        assert current == Period.current()
        assert previous is None

    async def test_set_active_period(self, db, org):
        await snapshot_store.set_active_period(db, org.id, Period(2026, 3), previous=Period(2026, 2))
        current, previous = await snapshot_store.get_active_period(db, org.id)
        assert (current, previous) == (Period(2026, 3), Period(2026, 2))
