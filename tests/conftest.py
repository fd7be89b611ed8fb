"""
Test fixtures for RiskIntel.

Provides:
- Async DB engine/session per test (file-backed SQLite, so several
  sessions see each other's commits the way batch operations need)
- Organization fixtures
- Sample data helpers for risks, controls, events and alerts
"""

import os
import uuid
from datetime import datetime
from typing import AsyncGenerator, Optional

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Keep the app from creating tables on import-time settings
os.environ.setdefault("ENVIRONMENT", "testing")

from riskintel.db.engine import Base  # noqa: E402
from riskintel.db.models import (  # noqa: E402, F401 (register all models)
    ActivePeriod,
    Control,
    ExternalEvent,
    Organization,
    PeriodCommit,
    Risk,
    RiskHistorySnapshot,
    RiskIntelligenceAlert,
    TreatmentLogEntry,
)
from riskintel.intelligence.schemas import ClassificationResult  # noqa: E402
from riskintel.risks.schemas import ControlCreate, RiskCreate  # noqa: E402
from riskintel.risks.service import risk_service  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database with all tables."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'riskintel_test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ── Organization Fixtures ───────────────────────────────────────────────


async def _create_org(session_factory, name: str, matrix_size: int = 5) -> Organization:
    async with session_factory() as session:
        org = Organization(
            id=uuid.uuid4(),
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:8]}",
            matrix_size=matrix_size,
        )
        session.add(org)
        await session.commit()
        await session.refresh(org)
        return org


@pytest_asyncio.fixture
async def org(session_factory) -> Organization:
    """Create test organization with a 5×5 matrix."""
    return await _create_org(session_factory, "Org Alpha")


@pytest_asyncio.fixture
async def other_org(session_factory) -> Organization:
    """Second tenant, for isolation checks."""
    return await _create_org(session_factory, "Org Beta")


# ── Sample Data Helpers ──────────────────────────────────────────────────


async def create_risk(
    session: AsyncSession,
    org_id: uuid.UUID,
    risk_code: str = "R-001",
    likelihood: int = 3,
    impact: int = 3,
    **kwargs,
) -> Risk:
    """Helper: create a risk through the register service."""
    return await risk_service.create_risk(
        session,
        org_id,
        RiskCreate(
            risk_code=risk_code,
            risk_title=kwargs.pop("risk_title", f"Risk {risk_code}"),
            likelihood_inherent=likelihood,
            impact_inherent=impact,
            **kwargs,
        ),
    )


async def add_control(
    session: AsyncSession,
    org_id: uuid.UUID,
    risk_code: str,
    target: str = "Likelihood",
    scores: tuple[int, int, int, int] = (2, 2, 2, 2),
    name: Optional[str] = None,
) -> Control:
    """Helper: attach a DIME-rated control to a risk."""
    d, i, m, e = scores
    return await risk_service.add_control(
        session,
        org_id,
        risk_code,
        ControlCreate(
            name=name or f"{target} control",
            target=target,
            design_score=d,
            implementation_score=i,
            monitoring_score=m,
            evaluation_score=e,
        ),
    )


async def create_event(
    session: AsyncSession,
    org_id: uuid.UUID,
    title: Optional[str] = None,
    **kwargs,
) -> ExternalEvent:
    """Helper: create an external event directly."""
    event = ExternalEvent(
        organization_id=org_id,
        source=kwargs.get("source", "feed.example"),
        event_type=kwargs.get("event_type", "regulatory"),
        title=title or f"Event {uuid.uuid4().hex[:6]}",
        summary=kwargs.get("summary", "Something happened"),
        published_date=kwargs.get("published_date", datetime(2025, 7, 1, 12, 0)),
        relevance_checked=kwargs.get("relevance_checked", False),
    )
    session.add(event)
    await session.flush()
    return event


async def create_alert(
    session: AsyncSession,
    org_id: uuid.UUID,
    risk: Risk,
    likelihood_change: Optional[int] = None,
    impact_change: Optional[int] = None,
    confidence: int = 85,
) -> RiskIntelligenceAlert:
    """Helper: create a pending alert for a risk on a fresh event."""
    from riskintel.intelligence.manager import alert_manager

    event = await create_event(session, org_id)
    return await alert_manager.create_alert(
        session,
        org_id,
        event.id,
        risk,
        ClassificationResult(
            is_relevant=True,
            confidence_score=confidence,
            suggested_likelihood_change=likelihood_change,
            impact_change=impact_change,
            reasoning="test",
        ),
    )


async def accepted_alert(
    session: AsyncSession,
    org_id: uuid.UUID,
    risk: Risk,
    likelihood_change: Optional[int] = None,
    impact_change: Optional[int] = None,
) -> RiskIntelligenceAlert:
    """Helper: create an alert and accept it."""
    from riskintel.intelligence.manager import alert_manager

    alert = await create_alert(session, org_id, risk, likelihood_change, impact_change)
    return await alert_manager.accept(session, org_id, alert.id)
