"""
Risk register service tests.

Tests: create/update validation, compare-and-set versioning, reactive
residual recalculation on control changes, filters, tenant isolation.
"""

import pytest

from riskintel.errors import ConflictError, NotFoundError, ValidationError, VersionConflictError
from riskintel.risks.schemas import ControlUpdate, RiskFilters, RiskStatus, RiskUpdate
from riskintel.risks.service import RiskRegisterService, risk_service
from tests.conftest import add_control, create_risk


@pytest.mark.asyncio
class TestCreate:
    async def test_residual_starts_at_inherent(self, db, org):
        risk = await create_risk(db, org.id, likelihood=4, impact=5)
        assert risk.version == 1
        assert risk.status == RiskStatus.OPEN
        assert risk.score_inherent == 20
        assert (risk.residual_likelihood, risk.residual_impact, risk.residual_score) == (4, 5, 20)
        assert risk.residual_formula == "multiplicative-v1"
        assert risk.last_residual_calc is not None
        assert risk.controls == []

    async def test_duplicate_code(self, db, org):
        await create_risk(db, org.id, "R-001")
        with pytest.raises(ConflictError):
            await create_risk(db, org.id, "R-001")

    async def test_same_code_in_other_tenant(self, db, org, other_org):
        await create_risk(db, org.id, "R-001")
        risk = await create_risk(db, other_org.id, "R-001")
        assert risk.organization_id == other_org.id

    async def test_scores_bounded_by_matrix(self, db, org):
        with pytest.raises(ValidationError) as exc_info:
            await create_risk(db, org.id, likelihood=6, impact=1)
        assert exc_info.value.field == "likelihood_inherent"

    async def test_unknown_org(self, db):
        import uuid

        with pytest.raises(NotFoundError):
            await create_risk(db, uuid.uuid4())


@pytest.mark.asyncio
class TestUpdate:
    async def test_update_bumps_version_and_recomputes(self, db, org):
        await create_risk(db, org.id, likelihood=2, impact=2)
        await add_control(db, org.id, "R-001", target="Impact")
        risk = await risk_service.get_risk(db, org.id, "R-001")

        risk = await risk_service.update_risk(
            db, org.id, "R-001",
            RiskUpdate(expected_version=risk.version, impact_inherent=5, owner="cfo"),
        )
        assert risk.version == 3
        assert risk.owner == "cfo"
        assert risk.impact_inherent == 5
        assert risk.residual_impact == 2       # ceil(5 × 1/3)

    async def test_stale_version_rejected(self, db, org):
        risk = await create_risk(db, org.id)
        await risk_service.update_risk(
            db, org.id, "R-001", RiskUpdate(expected_version=1, risk_title="Renamed")
        )
        with pytest.raises(VersionConflictError) as exc_info:
            await risk_service.update_risk(
                db, org.id, "R-001", RiskUpdate(expected_version=1, risk_title="Lost write")
            )
        assert exc_info.value.status_code == 409
        await db.refresh(risk)
        assert risk.risk_title == "Renamed"

    async def test_update_out_of_bounds(self, db, org):
        await create_risk(db, org.id)
        with pytest.raises(ValidationError):
            await risk_service.update_risk(
                db, org.id, "R-001", RiskUpdate(expected_version=1, likelihood_inherent=7)
            )

    async def test_set_status(self, db, org):
        await create_risk(db, org.id)
        risk = await risk_service.set_status(db, org.id, "R-001", RiskStatus.MONITORING, 1)
        assert risk.status == "MONITORING"
        assert risk.version == 2


@pytest.mark.asyncio
class TestControls:
    async def test_add_control_recomputes(self, db, org):
        """L4/I5 plus a likelihood control at DIME 2 → residual 2/5 (10)."""
        await create_risk(db, org.id, likelihood=4, impact=5)
        control = await add_control(db, org.id, "R-001", target="Likelihood")
        risk = await risk_service.get_risk(db, org.id, "R-001")

        assert control.risk_id == risk.id
        assert (risk.residual_likelihood, risk.residual_impact, risk.residual_score) == (2, 5, 10)
        assert [c.id for c in risk.controls] == [control.id]
        assert risk.version == 2

    async def test_update_control_recomputes(self, db, org):
        await create_risk(db, org.id, likelihood=4, impact=5)
        control = await add_control(db, org.id, "R-001", target="Likelihood")

        await risk_service.update_control(
            db, org.id, control.id,
            ControlUpdate(design_score=3, implementation_score=3,
                          monitoring_score=3, evaluation_score=3),
        )
        risk = await risk_service.get_risk(db, org.id, "R-001")
        assert risk.residual_likelihood == 1

    async def test_remove_control_restores_inherent(self, db, org):
        await create_risk(db, org.id, likelihood=4, impact=5)
        control = await add_control(db, org.id, "R-001", target="Impact")

        risk = await risk_service.remove_control(db, org.id, control.id)
        assert (risk.residual_likelihood, risk.residual_impact) == (4, 5)
        assert risk.controls == []

    async def test_control_change_with_stale_version(self, db, org):
        await create_risk(db, org.id)
        with pytest.raises(VersionConflictError):
            await add_control_with_version(db, org.id, expected_version=5)

    async def test_recalculate_with_other_formula(self, db, org):
        await create_risk(db, org.id, likelihood=4, impact=1)
        await add_control(db, org.id, "R-001", scores=(2, 1, 2, 1))
        legacy = RiskRegisterService(formula="max-effectiveness-v0")

        risk = await legacy.recalculate_residual(db, org.id, "R-001")
        assert risk.residual_formula == "max-effectiveness-v0"
        assert risk.residual_likelihood == 2

    async def test_remove_unknown_control(self, db, org):
        import uuid

        with pytest.raises(NotFoundError):
            await risk_service.remove_control(db, org.id, uuid.uuid4())


@pytest.mark.asyncio
class TestList:
    async def test_filters(self, db, org, other_org):
        await create_risk(db, org.id, "R-001", category="Finance", is_priority=True)
        await create_risk(db, org.id, "R-002", category="Operations")
        await create_risk(db, org.id, "R-003", category="Finance", status=RiskStatus.CLOSED)
        await create_risk(db, other_org.id, "R-009", category="Finance")

        finance = await risk_service.list_risks(db, org.id, RiskFilters(category="Finance"))
        assert [r.risk_code for r in finance] == ["R-001", "R-003"]

        closed = await risk_service.list_risks(db, org.id, RiskFilters(status=RiskStatus.CLOSED))
        assert [r.risk_code for r in closed] == ["R-003"]

        priority = await risk_service.list_risks(db, org.id, RiskFilters(is_priority=True))
        assert [r.risk_code for r in priority] == ["R-001"]

        everything = await risk_service.list_risks(db, org.id)
        assert len(everything) == 3

    async def test_other_tenant_not_visible(self, db, org, other_org):
        await create_risk(db, org.id, "R-001")
        with pytest.raises(NotFoundError):
            await risk_service.get_risk(db, other_org.id, "R-001")


async def add_control_with_version(db, org_id, expected_version):
    from riskintel.risks.schemas import ControlCreate

    return await risk_service.add_control(
        db, org_id, "R-001",
        ControlCreate(name="Stale", target="Likelihood", design_score=1),
        expected_version=expected_version,
    )
