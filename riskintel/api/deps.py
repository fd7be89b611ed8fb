"""
FastAPI dependencies for API routes.

Tenant and actor come from request headers:
- X-Organization-ID: organization UUID (required)
- X-User-ID: free-form actor recorded in audit fields (optional)
"""

import uuid
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskintel.db.engine import get_session_factory
from riskintel.errors import ValidationError


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Session factory for operations that commit per item (batch endpoints)."""
    return get_session_factory()


async def get_db(
    factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
) -> AsyncGenerator[AsyncSession, None]:
    """One session per request; commit on success, roll back on any error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_org_id(
    x_organization_id: Optional[str] = Header(default=None, alias="X-Organization-ID"),
) -> uuid.UUID:
    if not x_organization_id:
        raise ValidationError("Missing X-Organization-ID header", field="X-Organization-ID")
    try:
        return uuid.UUID(x_organization_id)
    except ValueError:
        raise ValidationError(
            "X-Organization-ID must be a UUID",
            field="X-Organization-ID",
            details={"value": x_organization_id},
        )


def get_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> Optional[str]:
    return x_user_id or None
