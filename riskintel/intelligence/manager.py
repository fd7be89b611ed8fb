"""
Alert Lifecycle Manager.

Drives RiskIntelligenceAlert through its state machine and applies /
reverts the suggested score deltas on the linked risk. Every transition
writes a treatment-log entry in the same transaction as the state change.

Guards:
- Alert rows move with ``UPDATE ... WHERE status = :expected``.
- Risk rows move with ``UPDATE ... WHERE version = :expected``.
A lost race surfaces as InvalidTransitionError / AlertAlreadyAppliedError /
VersionConflictError and the whole unit of work rolls back.
"""

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskintel.db.compat import utcnow
from riskintel.db.models import Risk, RiskIntelligenceAlert
from riskintel.db.repositories.alerts import alert_repo, event_repo
from riskintel.db.repositories.risks import org_repo, risk_repo
from riskintel.errors import (
    AlertAlreadyAppliedError,
    ConflictError,
    InvalidTransitionError,
    RiskIntelError,
)
from riskintel.intelligence.lifecycle import adjusted_scores, transition
from riskintel.intelligence.schemas import AlertStatus, BatchResult, ClassificationResult
from riskintel.risks.service import RiskRegisterService, risk_service
from riskintel.treatment.log import TreatmentLog, treatment_log
from riskintel.treatment.schemas import TreatmentAction

logger = structlog.get_logger(__name__)


class AlertLifecycleManager:
    """Accept, reject, apply, undo, and their batch forms."""

    def __init__(
        self,
        register: RiskRegisterService = risk_service,
        log: TreatmentLog = treatment_log,
    ):
        self.register = register
        self.log = log

    # ── Reads ──────────────────────────────────────────────────────────

    async def get_alert(
        self, db: AsyncSession, org_id: uuid.UUID, alert_id: uuid.UUID
    ) -> RiskIntelligenceAlert:
        return await alert_repo.require(db, org_id, alert_id)

    async def list_alerts(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        status: Optional[AlertStatus] = None,
        risk_code: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> Sequence[RiskIntelligenceAlert]:
        return await alert_repo.list_filtered(
            db, org_id, status=status, risk_code=risk_code, offset=offset, limit=limit
        )

    # ── Creation ───────────────────────────────────────────────────────

    async def create_alert(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        event_id: uuid.UUID,
        risk: Risk,
        classification: ClassificationResult,
    ) -> RiskIntelligenceAlert:
        """New pending alert. One alert per (event, risk)."""
        await event_repo.require(db, org_id, event_id)
        if await alert_repo.find(db, event_id, risk.id) is not None:
            raise ConflictError(
                "Alert already exists for this event and risk",
                details={"event_id": str(event_id), "risk_code": risk.risk_code},
            )
        alert = await alert_repo.add(
            db,
            organization_id=org_id,
            event_id=event_id,
            risk_id=risk.id,
            risk_code=risk.risk_code,
            status=AlertStatus.PENDING.value,
            created_at=utcnow(),
            **classification.model_dump(),
        )
        logger.info(
            "alert_created",
            org_id=str(org_id),
            alert_id=str(alert.id),
            risk_code=risk.risk_code,
            confidence=alert.confidence_score,
        )
        return alert

    # ── Review ─────────────────────────────────────────────────────────

    async def accept(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        alert_id: uuid.UUID,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> RiskIntelligenceAlert:
        return await self._review(db, org_id, alert_id, TreatmentAction.ACCEPT, notes, actor)

    async def reject(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        alert_id: uuid.UUID,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> RiskIntelligenceAlert:
        return await self._review(db, org_id, alert_id, TreatmentAction.REJECT, notes, actor)

    async def _review(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        alert_id: uuid.UUID,
        action: TreatmentAction,
        notes: Optional[str],
        actor: Optional[str],
    ) -> RiskIntelligenceAlert:
        alert = await alert_repo.require(db, org_id, alert_id)
        source = alert.status
        target = transition(source, action, str(alert_id))

        await self._move(
            db,
            alert,
            source,
            action,
            status=target.value,
            user_notes=notes,
            reviewed_by=actor,
            reviewed_at=utcnow(),
        )
        await self.log.append(
            db,
            org_id=org_id,
            alert_id=alert.id,
            risk_code=alert.risk_code,
            action=action,
            notes=notes,
            applied_by=actor,
        )
        logger.info(
            f"alert_{target.value}",
            org_id=str(org_id),
            alert_id=str(alert_id),
            risk_code=alert.risk_code,
        )
        return alert

    async def _move(
        self,
        db: AsyncSession,
        alert: RiskIntelligenceAlert,
        source: str,
        action: TreatmentAction,
        **values,
    ) -> None:
        """Status compare-and-set; on a lost race report the winner's state."""
        if await alert_repo.cas_status(db, alert, source, **values):
            return
        await db.refresh(alert, attribute_names=["status"])
        transition(alert.status, action, str(alert.id))
        raise InvalidTransitionError(str(alert.id), alert.status, action.value)

    # ── Apply / Undo ───────────────────────────────────────────────────

    async def _baseline(
        self, db: AsyncSession, org_id: uuid.UUID, risk: Risk
    ) -> tuple[int, int]:
        """
        Pre-intelligence inherent values.

        Stored baseline, else the earliest apply entry's previous values,
        else the current values.
        """
        if risk.intel_baseline_likelihood is not None and risk.intel_baseline_impact is not None:
            return risk.intel_baseline_likelihood, risk.intel_baseline_impact
        logged = await self.log.earliest_apply_baseline(db, org_id, risk.risk_code)
        if logged is not None and None not in logged:
            return logged
        return risk.likelihood_inherent, risk.impact_inherent

    async def apply(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        alert_id: uuid.UUID,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> RiskIntelligenceAlert:
        """
        Apply an accepted alert's deltas to its risk.

        Inherent scores become clamp(baseline + dominant change) over every
        applied alert of the risk, this one included.
        """
        alert = await alert_repo.require(db, org_id, alert_id)
        source = alert.status
        transition(source, TreatmentAction.APPLY, str(alert_id))

        org = await org_repo.require(db, org_id)
        risk = await risk_repo.require_with_controls(db, org_id, alert.risk_id)
        expected_version = risk.version
        previous = (risk.likelihood_inherent, risk.impact_inherent)

        already_applied = await alert_repo.applied_for_risk(db, risk.id)
        if already_applied:
            base_l, base_i = await self._baseline(db, org_id, risk)
        else:
            base_l, base_i = previous

        now = utcnow()
        await self._move(
            db,
            alert,
            source,
            TreatmentAction.APPLY,
            status=AlertStatus.APPLIED.value,
            applied_at=now,
            user_notes=notes if notes is not None else alert.user_notes,
        )

        applied = await alert_repo.applied_for_risk(db, risk.id)
        new_l, new_i = adjusted_scores(
            base_l,
            base_i,
            [(a.suggested_likelihood_change, a.impact_change) for a in applied],
            org.matrix_size,
        )
        risk = await self.register.write_scores(
            db,
            org,
            risk,
            new_l,
            new_i,
            expected_version,
            intel_baseline_likelihood=base_l,
            intel_baseline_impact=base_i,
            last_intelligence_check=now,
        )

        await self.log.append(
            db,
            org_id=org_id,
            alert_id=alert.id,
            risk_code=risk.risk_code,
            action=TreatmentAction.APPLY,
            previous_likelihood=previous[0],
            new_likelihood=new_l,
            previous_impact=previous[1],
            new_impact=new_i,
            notes=notes,
            applied_by=actor,
        )
        logger.info(
            "alert_applied",
            org_id=str(org_id),
            alert_id=str(alert_id),
            risk_code=risk.risk_code,
            likelihood=f"{previous[0]}->{new_l}",
            impact=f"{previous[1]}->{new_i}",
            applied_alerts=len(applied),
        )
        return alert

    async def undo(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        alert_id: uuid.UUID,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> RiskIntelligenceAlert:
        """
        Revert an applied alert.

        The risk is recomputed from the baseline over the remaining applied
        alerts; with none left it returns to the baseline, which is cleared.
        """
        alert = await alert_repo.require(db, org_id, alert_id)
        source = alert.status
        transition(source, TreatmentAction.UNDO, str(alert_id))

        org = await org_repo.require(db, org_id)
        risk = await risk_repo.require_with_controls(db, org_id, alert.risk_id)
        expected_version = risk.version
        previous = (risk.likelihood_inherent, risk.impact_inherent)
        base_l, base_i = await self._baseline(db, org_id, risk)

        await self._move(
            db,
            alert,
            source,
            TreatmentAction.UNDO,
            status=AlertStatus.ACCEPTED.value,
            applied_at=None,
        )

        remaining = await alert_repo.applied_for_risk(db, risk.id)
        if remaining:
            new_l, new_i = adjusted_scores(
                base_l,
                base_i,
                [(a.suggested_likelihood_change, a.impact_change) for a in remaining],
                org.matrix_size,
            )
            baseline = {"intel_baseline_likelihood": base_l, "intel_baseline_impact": base_i}
        else:
            new_l, new_i = base_l, base_i
            baseline = {"intel_baseline_likelihood": None, "intel_baseline_impact": None}

        risk = await self.register.write_scores(
            db, org, risk, new_l, new_i, expected_version, **baseline
        )

        await self.log.append(
            db,
            org_id=org_id,
            alert_id=alert.id,
            risk_code=risk.risk_code,
            action=TreatmentAction.UNDO,
            previous_likelihood=previous[0],
            new_likelihood=new_l,
            previous_impact=previous[1],
            new_impact=new_i,
            notes=reason,
            applied_by=actor,
        )
        logger.info(
            "alert_undone",
            org_id=str(org_id),
            alert_id=str(alert_id),
            risk_code=risk.risk_code,
            likelihood=f"{previous[0]}->{new_l}",
            impact=f"{previous[1]}->{new_i}",
            remaining_applied=len(remaining),
        )
        return alert

    # ── Batch ──────────────────────────────────────────────────────────

    async def batch_apply(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        org_id: uuid.UUID,
        alert_ids: list[uuid.UUID],
        notes: Optional[dict[str, str]] = None,
        actor: Optional[str] = None,
    ) -> BatchResult:
        """
        Apply alerts one by one, each in its own committed transaction.

        A failing item is recorded and skipped; the batch never aborts.
        """
        notes = notes or {}
        result = BatchResult()
        for alert_id in alert_ids:
            async with session_factory() as session:
                try:
                    await self.apply(
                        session, org_id, alert_id, notes=notes.get(str(alert_id)), actor=actor
                    )
                    await session.commit()
                    result.record_success()
                except (RiskIntelError, SQLAlchemyError) as exc:
                    await session.rollback()
                    result.record_error(str(alert_id), getattr(exc, "message", str(exc)))
                    logger.warning(
                        "batch_apply_item_failed",
                        org_id=str(org_id),
                        alert_id=str(alert_id),
                        error=str(exc),
                    )

        logger.info(
            "batch_apply_completed",
            org_id=str(org_id),
            success_count=result.success_count,
            error_count=result.error_count,
        )
        return result

    async def bulk_delete(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        org_id: uuid.UUID,
        alert_ids: list[uuid.UUID],
    ) -> BatchResult:
        """Delete alerts that are not applied. Applied alerts are reported as errors."""
        result = BatchResult()
        for alert_id in alert_ids:
            async with session_factory() as session:
                try:
                    alert = await alert_repo.require(session, org_id, alert_id)
                    if alert.status == AlertStatus.APPLIED:
                        raise AlertAlreadyAppliedError(str(alert_id))
                    await session.delete(alert)
                    await session.commit()
                    result.record_success()
                except (RiskIntelError, SQLAlchemyError) as exc:
                    await session.rollback()
                    result.record_error(str(alert_id), getattr(exc, "message", str(exc)))

        logger.info(
            "bulk_delete_completed",
            org_id=str(org_id),
            success_count=result.success_count,
            error_count=result.error_count,
        )
        return result


alert_manager = AlertLifecycleManager()
