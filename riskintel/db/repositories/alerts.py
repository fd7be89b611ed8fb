"""Intelligence alert and external event repositories."""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.db.models import ExternalEvent, RiskIntelligenceAlert
from riskintel.db.repositories.base import BaseRepository


class AlertRepository(BaseRepository[RiskIntelligenceAlert]):
    resource_name = "RiskIntelligenceAlert"

    def __init__(self):
        super().__init__(RiskIntelligenceAlert)

    async def applied_for_risk(
        self, db: AsyncSession, risk_id: uuid.UUID
    ) -> Sequence[RiskIntelligenceAlert]:
        """Applied alerts for a risk, oldest application first."""
        result = await db.execute(
            select(RiskIntelligenceAlert)
            .where(
                RiskIntelligenceAlert.risk_id == risk_id,
                RiskIntelligenceAlert.status == "applied",
            )
            .order_by(RiskIntelligenceAlert.applied_at, RiskIntelligenceAlert.created_at)
        )
        return result.scalars().all()

    async def find(
        self, db: AsyncSession, event_id: uuid.UUID, risk_id: uuid.UUID
    ) -> Optional[RiskIntelligenceAlert]:
        result = await db.execute(
            select(RiskIntelligenceAlert).where(
                RiskIntelligenceAlert.event_id == event_id,
                RiskIntelligenceAlert.risk_id == risk_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        status: Optional[str] = None,
        risk_code: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> Sequence[RiskIntelligenceAlert]:
        stmt = select(RiskIntelligenceAlert).where(
            RiskIntelligenceAlert.organization_id == org_id
        )
        if status:
            stmt = stmt.where(RiskIntelligenceAlert.status == status)
        if risk_code:
            stmt = stmt.where(RiskIntelligenceAlert.risk_code == risk_code)
        stmt = (
            stmt.order_by(RiskIntelligenceAlert.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return result.scalars().all()

    async def cas_status(
        self,
        db: AsyncSession,
        alert: RiskIntelligenceAlert,
        expected_status: str,
        **values: Any,
    ) -> bool:
        """
        Move an alert out of ``expected_status``.

        Returns False when the row was no longer in that status (a concurrent
        writer won); the caller decides which error to raise.
        """
        result = await db.execute(
            update(RiskIntelligenceAlert)
            .where(
                RiskIntelligenceAlert.id == alert.id,
                RiskIntelligenceAlert.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await db.refresh(alert, attribute_names=list(values.keys()))
        return True


class EventRepository(BaseRepository[ExternalEvent]):
    resource_name = "ExternalEvent"

    def __init__(self):
        super().__init__(ExternalEvent)

    async def find_recent_duplicate(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        source: str,
        title: str,
        window_start: datetime,
        window_end: datetime,
    ) -> Optional[ExternalEvent]:
        result = await db.execute(
            select(ExternalEvent)
            .where(
                ExternalEvent.organization_id == org_id,
                ExternalEvent.source == source,
                ExternalEvent.title == title,
                ExternalEvent.published_date >= window_start,
                ExternalEvent.published_date <= window_end,
            )
            .order_by(ExternalEvent.published_date)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def unchecked(
        self, db: AsyncSession, org_id: uuid.UUID, limit: int
    ) -> Sequence[ExternalEvent]:
        result = await db.execute(
            select(ExternalEvent)
            .where(
                ExternalEvent.organization_id == org_id,
                ExternalEvent.relevance_checked.is_(False),
            )
            .order_by(ExternalEvent.published_date.desc())
            .limit(limit)
        )
        return result.scalars().all()


alert_repo = AlertRepository()
event_repo = EventRepository()
