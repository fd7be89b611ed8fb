"""Risk and Control repositories."""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from riskintel.db.compat import utcnow
from riskintel.db.models import Control, Organization, Risk
from riskintel.db.repositories.base import BaseRepository
from riskintel.errors import NotFoundError, VersionConflictError


class RiskRepository(BaseRepository[Risk]):
    resource_name = "Risk"

    def __init__(self):
        super().__init__(Risk)

    async def get_by_code(
        self, db: AsyncSession, org_id: uuid.UUID, risk_code: str
    ) -> Optional[Risk]:
        result = await db.execute(
            select(Risk)
            .options(selectinload(Risk.controls))
            .where(Risk.organization_id == org_id, Risk.risk_code == risk_code)
        )
        return result.scalar_one_or_none()

    async def require_code(
        self, db: AsyncSession, org_id: uuid.UUID, risk_code: str
    ) -> Risk:
        risk = await self.get_by_code(db, org_id, risk_code)
        if risk is None:
            raise NotFoundError("Risk", risk_code)
        return risk

    async def require_with_controls(
        self, db: AsyncSession, org_id: uuid.UUID, risk_id: uuid.UUID
    ) -> Risk:
        result = await db.execute(
            select(Risk)
            .options(selectinload(Risk.controls))
            .where(Risk.organization_id == org_id, Risk.id == risk_id)
        )
        risk = result.scalar_one_or_none()
        if risk is None:
            raise NotFoundError("Risk", str(risk_id))
        return risk

    async def list_filtered(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        status: Optional[str] = None,
        category: Optional[str] = None,
        division: Optional[str] = None,
        department: Optional[str] = None,
        is_priority: Optional[bool] = None,
        exclude_status: Optional[str] = None,
    ) -> Sequence[Risk]:
        stmt = (
            select(Risk)
            .options(selectinload(Risk.controls))
            .where(Risk.organization_id == org_id)
        )
        if status:
            stmt = stmt.where(Risk.status == status)
        if exclude_status:
            stmt = stmt.where(Risk.status != exclude_status)
        if category:
            stmt = stmt.where(Risk.category == category)
        if division:
            stmt = stmt.where(Risk.division == division)
        if department:
            stmt = stmt.where(Risk.department == department)
        if is_priority is not None:
            stmt = stmt.where(Risk.is_priority == is_priority)
        result = await db.execute(stmt.order_by(Risk.risk_code))
        return result.scalars().all()

    async def cas_update(
        self,
        db: AsyncSession,
        risk: Risk,
        expected_version: int,
        **values: Any,
    ) -> Risk:
        """
        Compare-and-set write guarded by the version marker.

        Issues ``UPDATE ... WHERE version = :expected`` and bumps the version.
        Raises VersionConflictError when another writer got there first.
        """
        values["version"] = expected_version + 1
        values.setdefault("updated_at", utcnow())
        result = await db.execute(
            update(Risk)
            .where(Risk.id == risk.id, Risk.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise VersionConflictError("Risk", risk.risk_code, expected_version)
        # Reload the written columns instead of setattr, which would
        # schedule a second UPDATE at flush.
        await db.refresh(risk, attribute_names=list(values.keys()))
        return risk


class ControlRepository(BaseRepository[Control]):
    resource_name = "Control"

    def __init__(self):
        super().__init__(Control)

    async def for_risk(self, db: AsyncSession, risk_id: uuid.UUID) -> Sequence[Control]:
        result = await db.execute(
            select(Control).where(Control.risk_id == risk_id).order_by(Control.created_at)
        )
        return result.scalars().all()


class OrganizationRepository:
    async def require(self, db: AsyncSession, org_id: uuid.UUID) -> Organization:
        org = await db.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Organization", str(org_id))
        return org


risk_repo = RiskRepository()
control_repo = ControlRepository()
org_repo = OrganizationRepository()
