"""
Treatment Log Service.

Append-only ledger of every accept / reject / apply / undo. Each entry
carries a SHA-256 hash over its content and the previous entry's hash
(per organization, ordered by sequence) for tamper detection.

Writes share the caller's session: the state change and its audit entry
commit or roll back together.
"""

import hashlib
import json
import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.db.compat import utcnow
from riskintel.db.models import TreatmentLogEntry
from riskintel.errors import ConflictError, NotFoundError
from riskintel.treatment.schemas import ChainBreak, ChainReport, TreatmentAction

logger = structlog.get_logger(__name__)


def compute_entry_hash(entry: TreatmentLogEntry) -> str:
    """SHA-256 over canonical JSON of the immutable fields. Archive fields are excluded."""
    immutable_parts = {
        "id": entry.id,
        "organization_id": entry.organization_id,
        "sequence": entry.sequence,
        "alert_id": entry.alert_id,
        "risk_code": entry.risk_code,
        "action_taken": entry.action_taken,
        "previous_likelihood": entry.previous_likelihood,
        "new_likelihood": entry.new_likelihood,
        "previous_impact": entry.previous_impact,
        "new_impact": entry.new_impact,
        "notes": entry.notes,
        "applied_by": entry.applied_by,
        "applied_at": entry.applied_at.isoformat(),
        "previous_hash": entry.previous_hash,
    }
    json_str = json.dumps(immutable_parts, sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()


class TreatmentLog:
    """Hash-chained, soft-deletable audit trail."""

    async def append(
        self,
        session: AsyncSession,
        *,
        org_id: uuid.UUID,
        alert_id: uuid.UUID,
        risk_code: str,
        action: TreatmentAction,
        previous_likelihood: Optional[int] = None,
        new_likelihood: Optional[int] = None,
        previous_impact: Optional[int] = None,
        new_impact: Optional[int] = None,
        notes: Optional[str] = None,
        applied_by: Optional[str] = None,
    ) -> TreatmentLogEntry:
        """
        Record a lifecycle action.

        Two writers racing for the same sequence number collide on the
        (organization_id, sequence) unique constraint; the loser gets a
        ConflictError and its whole transaction rolls back.
        """
        last = await self._last_entry(session, org_id)
        entry = TreatmentLogEntry(
            id=uuid.uuid4(),
            organization_id=org_id,
            sequence=(last.sequence + 1) if last else 1,
            alert_id=alert_id,
            risk_code=risk_code,
            action_taken=TreatmentAction(action).value,
            previous_likelihood=previous_likelihood,
            new_likelihood=new_likelihood,
            previous_impact=previous_impact,
            new_impact=new_impact,
            notes=notes,
            applied_by=applied_by,
            applied_at=utcnow(),
            previous_hash=last.entry_hash if last else None,
        )
        entry.entry_hash = compute_entry_hash(entry)

        session.add(entry)
        try:
            await session.flush()
        except IntegrityError:
            raise ConflictError(
                "Treatment log sequence taken by a concurrent writer",
                details={"org_id": str(org_id), "sequence": entry.sequence},
            )

        logger.info(
            "treatment_logged",
            org_id=str(org_id),
            risk_code=risk_code,
            alert_id=str(alert_id),
            action=entry.action_taken,
            sequence=entry.sequence,
        )
        return entry

    async def _last_entry(
        self, session: AsyncSession, org_id: uuid.UUID
    ) -> Optional[TreatmentLogEntry]:
        result = await session.execute(
            select(TreatmentLogEntry)
            .where(
                TreatmentLogEntry.organization_id == org_id,
                TreatmentLogEntry.sequence
                == select(func.max(TreatmentLogEntry.sequence))
                .where(TreatmentLogEntry.organization_id == org_id)
                .scalar_subquery(),
            )
        )
        return result.scalar_one_or_none()

    async def archive(
        self,
        session: AsyncSession,
        org_id: uuid.UUID,
        log_id: uuid.UUID,
        archived_by: Optional[str] = None,
    ) -> TreatmentLogEntry:
        """Soft-delete an entry. Archiving twice is a no-op."""
        result = await session.execute(
            select(TreatmentLogEntry).where(
                TreatmentLogEntry.id == log_id,
                TreatmentLogEntry.organization_id == org_id,
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("TreatmentLogEntry", str(log_id))
        if entry.deleted_at is not None:
            return entry

        entry.deleted_at = utcnow()
        entry.deleted_by = archived_by
        await session.flush()
        logger.info("treatment_archived", org_id=str(org_id), log_id=str(log_id))
        return entry

    async def get_log(
        self,
        session: AsyncSession,
        org_id: uuid.UUID,
        risk_code: Optional[str] = None,
        include_archived: bool = False,
        alert_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[TreatmentLogEntry]:
        """Entries newest-first. Unbounded unless the caller pages with limit/offset."""
        stmt = select(TreatmentLogEntry).where(TreatmentLogEntry.organization_id == org_id)
        if risk_code:
            stmt = stmt.where(TreatmentLogEntry.risk_code == risk_code)
        if alert_id:
            stmt = stmt.where(TreatmentLogEntry.alert_id == alert_id)
        if not include_archived:
            stmt = stmt.where(TreatmentLogEntry.deleted_at.is_(None))
        stmt = stmt.order_by(TreatmentLogEntry.sequence.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def earliest_apply_baseline(
        self, session: AsyncSession, org_id: uuid.UUID, risk_code: str
    ) -> Optional[tuple[Optional[int], Optional[int]]]:
        """Previous (likelihood, impact) of the first ``apply`` ever logged for a risk."""
        result = await session.execute(
            select(TreatmentLogEntry)
            .where(
                TreatmentLogEntry.organization_id == org_id,
                TreatmentLogEntry.risk_code == risk_code,
                TreatmentLogEntry.action_taken == TreatmentAction.APPLY.value,
            )
            .order_by(TreatmentLogEntry.sequence)
            .limit(1)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            return None
        return entry.previous_likelihood, entry.previous_impact

    async def verify_chain(self, session: AsyncSession, org_id: uuid.UUID) -> ChainReport:
        """Recompute the organization's hash chain and report every break."""
        result = await session.execute(
            select(TreatmentLogEntry)
            .where(TreatmentLogEntry.organization_id == org_id)
            .order_by(TreatmentLogEntry.sequence)
        )
        entries = result.scalars().all()
        if not entries:
            return ChainReport(status="empty", total_entries=0, chain_intact=True)

        breaks: list[ChainBreak] = []
        previous_hash: Optional[str] = None
        for entry in entries:
            if entry.previous_hash != previous_hash:
                breaks.append(ChainBreak(
                    entry_id=str(entry.id),
                    sequence=entry.sequence,
                    issue="previous_hash_mismatch",
                    expected=previous_hash,
                    actual=entry.previous_hash,
                ))
            expected_hash = compute_entry_hash(entry)
            if entry.entry_hash != expected_hash:
                breaks.append(ChainBreak(
                    entry_id=str(entry.id),
                    sequence=entry.sequence,
                    issue="entry_hash_mismatch",
                    expected=expected_hash,
                    actual=entry.entry_hash,
                ))
            previous_hash = entry.entry_hash

        if breaks:
            logger.warning("treatment_chain_broken", org_id=str(org_id), breaks=len(breaks))
        return ChainReport(
            status="broken" if breaks else "intact",
            total_entries=len(entries),
            chain_intact=not breaks,
            breaks_found=len(breaks),
            breaks=breaks[:10],
        )


treatment_log = TreatmentLog()
