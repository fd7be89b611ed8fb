"""
Generic async repository.

Every query is scoped by organization_id explicitly; there is no RLS layer,
so callers always pass the tenant.
"""

import uuid
from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.db.engine import Base
from riskintel.errors import NotFoundError

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Tenant-scoped read helpers shared by every repository."""

    resource_name: str = "Record"

    def __init__(self, model: Type[ModelT]):
        self.model = model

    async def add(self, db: AsyncSession, **values: Any) -> ModelT:
        """Insert a new row and flush so server defaults are populated."""
        obj = self.model(**values)
        db.add(obj)
        await db.flush()
        return obj

    async def get_by_id(
        self, db: AsyncSession, org_id: uuid.UUID, id: uuid.UUID
    ) -> Optional[ModelT]:
        result = await db.execute(
            select(self.model).where(
                self.model.id == id,
                self.model.organization_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def require(
        self, db: AsyncSession, org_id: uuid.UUID, id: uuid.UUID
    ) -> ModelT:
        """Like get_by_id but raises NotFoundError."""
        obj = await self.get_by_id(db, org_id, id)
        if obj is None:
            raise NotFoundError(self.resource_name, str(id))
        return obj

    async def list(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> Sequence[ModelT]:
        col = getattr(self.model, order_by, self.model.created_at)
        stmt = (
            select(self.model)
            .where(self.model.organization_id == org_id)
            .order_by(col.desc() if descending else col.asc())
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return result.scalars().all()
