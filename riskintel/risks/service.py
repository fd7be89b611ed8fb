"""
Risk Register Service.

CRUD for risks and controls. The cached residual is recomputed reactively
whenever inherent scores or controls change, and every write goes through
the compare-and-set on Risk.version.
"""

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.config import settings
from riskintel.db.compat import utcnow
from riskintel.db.models import Control, Organization, Risk
from riskintel.db.repositories.risks import control_repo, org_repo, risk_repo
from riskintel.errors import ConflictError, NotFoundError, ValidationError
from riskintel.risks.schemas import (
    ControlCreate,
    ControlUpdate,
    RiskCreate,
    RiskFilters,
    RiskStatus,
    RiskUpdate,
)
from riskintel.scoring.residual import ResidualFormula, ResidualResult, compute_residual

logger = structlog.get_logger(__name__)


def _check_bounds(org: Organization, likelihood: int, impact: int) -> None:
    for name, value in (("likelihood_inherent", likelihood), ("impact_inherent", impact)):
        if not 1 <= value <= org.matrix_size:
            raise ValidationError(
                f"{name} must be between 1 and {org.matrix_size}",
                field=name,
                details={"value": value, "matrix_size": org.matrix_size},
            )


def _residual_values(result: ResidualResult) -> dict:
    return {
        "residual_likelihood": result.likelihood,
        "residual_impact": result.impact,
        "residual_score": result.score,
        "residual_formula": result.formula.value,
        "last_residual_calc": utcnow(),
    }


class RiskRegisterService:
    """Risks and controls with a reactively maintained residual."""

    def __init__(self, formula: Optional[str] = None):
        self.formula = ResidualFormula(formula or settings.residual_formula)

    # ── Reads ──────────────────────────────────────────────────────────

    async def get_risk(self, db: AsyncSession, org_id: uuid.UUID, risk_code: str) -> Risk:
        return await risk_repo.require_code(db, org_id, risk_code)

    async def list_risks(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        filters: Optional[RiskFilters] = None,
    ) -> Sequence[Risk]:
        filters = filters or RiskFilters()
        return await risk_repo.list_filtered(
            db,
            org_id,
            status=filters.status,
            category=filters.category,
            division=filters.division,
            department=filters.department,
            is_priority=filters.is_priority,
        )

    # ── Risk writes ────────────────────────────────────────────────────

    async def create_risk(self, db: AsyncSession, org_id: uuid.UUID, data: RiskCreate) -> Risk:
        org = await org_repo.require(db, org_id)
        _check_bounds(org, data.likelihood_inherent, data.impact_inherent)

        if await risk_repo.get_by_code(db, org_id, data.risk_code) is not None:
            raise ConflictError(
                f"Risk code already exists: {data.risk_code}",
                details={"risk_code": data.risk_code},
            )

        residual = compute_residual(
            data.likelihood_inherent, data.impact_inherent, [], org.matrix_size, self.formula
        )
        now = utcnow()
        risk = Risk(
            organization_id=org_id,
            version=1,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
            **_residual_values(residual),
        )
        db.add(risk)
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError(
                f"Risk code already exists: {data.risk_code}",
                details={"risk_code": data.risk_code},
            )
        await db.refresh(risk, attribute_names=["controls"])

        logger.info(
            "risk_created",
            org_id=str(org_id),
            risk_code=risk.risk_code,
            score_inherent=risk.score_inherent,
            residual_score=risk.residual_score,
        )
        return risk

    async def update_risk(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        risk_code: str,
        changes: RiskUpdate,
    ) -> Risk:
        org = await org_repo.require(db, org_id)
        risk = await risk_repo.require_code(db, org_id, risk_code)
        values = changes.model_dump(exclude_unset=True, exclude={"expected_version"})
        values = {k: v for k, v in values.items() if v is not None}

        if "likelihood_inherent" in values or "impact_inherent" in values:
            likelihood = values.get("likelihood_inherent", risk.likelihood_inherent)
            impact = values.get("impact_inherent", risk.impact_inherent)
            _check_bounds(org, likelihood, impact)
            controls = await control_repo.for_risk(db, risk.id)
            values.update(
                _residual_values(
                    compute_residual(likelihood, impact, controls, org.matrix_size, self.formula)
                )
            )
            # A manual edit while intelligence is applied becomes the new
            # pre-intelligence baseline.
            if risk.intel_baseline_likelihood is not None:
                values["intel_baseline_likelihood"] = likelihood
                values["intel_baseline_impact"] = impact

        risk = await risk_repo.cas_update(db, risk, changes.expected_version, **values)
        logger.info(
            "risk_updated",
            org_id=str(org_id),
            risk_code=risk_code,
            fields=sorted(values),
            version=risk.version,
        )
        return risk

    async def set_status(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        risk_code: str,
        status: RiskStatus,
        expected_version: int,
    ) -> Risk:
        risk = await risk_repo.require_code(db, org_id, risk_code)
        previous = risk.status
        risk = await risk_repo.cas_update(
            db, risk, expected_version, status=RiskStatus(status).value
        )
        logger.info(
            "risk_status_changed",
            org_id=str(org_id),
            risk_code=risk_code,
            from_status=previous,
            to_status=risk.status,
        )
        return risk

    async def write_scores(
        self,
        db: AsyncSession,
        org: Organization,
        risk: Risk,
        likelihood: int,
        impact: int,
        expected_version: int,
        **extra,
    ) -> Risk:
        """Write new inherent scores together with their residual (one CAS)."""
        _check_bounds(org, likelihood, impact)
        controls = await control_repo.for_risk(db, risk.id)
        residual = compute_residual(likelihood, impact, controls, org.matrix_size, self.formula)
        return await risk_repo.cas_update(
            db,
            risk,
            expected_version,
            likelihood_inherent=likelihood,
            impact_inherent=impact,
            **_residual_values(residual),
            **extra,
        )

    async def recalculate_residual(
        self, db: AsyncSession, org_id: uuid.UUID, risk_code: str
    ) -> Risk:
        org = await org_repo.require(db, org_id)
        risk = await risk_repo.require_code(db, org_id, risk_code)
        return await self._recompute(db, org, risk, risk.version)

    async def _recompute(
        self,
        db: AsyncSession,
        org: Organization,
        risk: Risk,
        expected_version: int,
    ) -> Risk:
        controls = await control_repo.for_risk(db, risk.id)
        residual = compute_residual(
            risk.likelihood_inherent, risk.impact_inherent, controls, org.matrix_size, self.formula
        )
        risk = await risk_repo.cas_update(db, risk, expected_version, **_residual_values(residual))
        await db.refresh(risk, attribute_names=["controls"])
        logger.info(
            "residual_recalculated",
            org_id=str(org.id),
            risk_code=risk.risk_code,
            residual_score=risk.residual_score,
            formula=risk.residual_formula,
        )
        return risk

    # ── Control writes ─────────────────────────────────────────────────

    async def add_control(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        risk_code: str,
        data: ControlCreate,
        expected_version: Optional[int] = None,
    ) -> Control:
        org = await org_repo.require(db, org_id)
        risk = await risk_repo.require_code(db, org_id, risk_code)
        version = expected_version if expected_version is not None else risk.version
        now = utcnow()
        control = await control_repo.add(
            db,
            organization_id=org_id,
            risk_id=risk.id,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        await self._recompute(db, org, risk, version)
        logger.info("control_added", org_id=str(org_id), risk_code=risk_code, control_id=str(control.id))
        return control

    async def update_control(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        control_id: uuid.UUID,
        data: ControlUpdate,
        expected_version: Optional[int] = None,
    ) -> Control:
        org = await org_repo.require(db, org_id)
        control = await control_repo.require(db, org_id, control_id)
        risk = await risk_repo.require_with_controls(db, org_id, control.risk_id)
        version = expected_version if expected_version is not None else risk.version

        for key, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(control, key, value)
        await db.flush()

        await self._recompute(db, org, risk, version)
        logger.info("control_updated", org_id=str(org_id), control_id=str(control_id))
        return control

    async def remove_control(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        control_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> Risk:
        org = await org_repo.require(db, org_id)
        control = await control_repo.get_by_id(db, org_id, control_id)
        if control is None:
            raise NotFoundError("Control", str(control_id))
        risk = await risk_repo.require_with_controls(db, org_id, control.risk_id)
        version = expected_version if expected_version is not None else risk.version

        await db.delete(control)
        await db.flush()

        risk = await self._recompute(db, org, risk, version)
        logger.info("control_removed", org_id=str(org_id), control_id=str(control_id))
        return risk


risk_service = RiskRegisterService()
