"""Organization endpoints. Organizations are the tenant boundary."""

import re
import uuid
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.api.deps import get_db
from riskintel.config import settings
from riskintel.db.compat import utcnow
from riskintel.db.models import Organization
from riskintel.db.repositories.risks import org_repo
from riskintel.errors import ConflictError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=100)
    matrix_size: int | None = Field(default=None, ge=5, le=6)


class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    matrix_size: int
    created_at: datetime

    model_config = {"from_attributes": True}


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "org"


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    body: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
):
    slug = body.slug or _slugify(body.name)
    existing = await db.execute(select(Organization).where(Organization.slug == slug))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Organization slug already exists: {slug}", details={"slug": slug})

    org = Organization(
        name=body.name,
        slug=slug,
        matrix_size=body.matrix_size or settings.default_matrix_size,
        created_at=utcnow(),
    )
    db.add(org)
    await db.flush()
    logger.info("organization_created", org_id=str(org.id), slug=slug, matrix_size=org.matrix_size)
    return org


@router.get("/{org_id}", response_model=OrganizationResponse)
async def get_organization(org_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await org_repo.require(db, org_id)
