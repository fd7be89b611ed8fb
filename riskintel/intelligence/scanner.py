"""
Intelligence Scanner.

Records external events (deduplicated) and correlates unchecked events
with every non-closed risk through the classifier. Relevant, confident
results become pending alerts; nothing here touches risk scores.
"""

import uuid
from datetime import timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from riskintel.config import settings
from riskintel.db.compat import utcnow
from riskintel.db.models import ExternalEvent
from riskintel.db.repositories.alerts import alert_repo, event_repo
from riskintel.db.repositories.risks import risk_repo
from riskintel.errors import ExternalServiceFailure
from riskintel.intelligence.classifier import HttpRiskClassifier, RiskClassifier
from riskintel.intelligence.manager import AlertLifecycleManager, alert_manager
from riskintel.intelligence.schemas import BatchItemError, ExternalEventCreate, ScanResult
from riskintel.risks.schemas import RiskStatus

logger = structlog.get_logger(__name__)


class IntelligenceScanner:
    def __init__(
        self,
        classifier: Optional[RiskClassifier] = None,
        manager: AlertLifecycleManager = alert_manager,
        min_confidence: Optional[int] = None,
        batch_limit: Optional[int] = None,
        dedup_window_days: Optional[int] = None,
    ):
        self.classifier = classifier or HttpRiskClassifier()
        self.manager = manager
        self.min_confidence = (
            settings.intel_min_confidence if min_confidence is None else min_confidence
        )
        self.batch_limit = batch_limit or settings.intel_scan_batch_limit
        self.dedup_window = timedelta(days=dedup_window_days or settings.event_dedup_window_days)

    async def record_event(
        self, db: AsyncSession, org_id: uuid.UUID, data: ExternalEventCreate
    ) -> tuple[ExternalEvent, bool]:
        """
        Store an event unless the same source published the same title
        within the dedup window. Returns (event, created).
        """
        published = data.published_date
        if published.tzinfo is not None:
            published = published.astimezone(timezone.utc).replace(tzinfo=None)

        existing = await event_repo.find_recent_duplicate(
            db,
            org_id,
            data.source,
            data.title,
            published - self.dedup_window,
            published + self.dedup_window,
        )
        if existing is not None:
            logger.info(
                "event_duplicate_skipped",
                org_id=str(org_id),
                source=data.source,
                existing_id=str(existing.id),
            )
            return existing, False

        now = utcnow()
        event = await event_repo.add(
            db,
            organization_id=org_id,
            source=data.source,
            event_type=data.event_type,
            title=data.title,
            summary=data.summary,
            url=data.url,
            published_date=published,
            fetched_at=now,
            created_at=now,
        )
        logger.info("event_recorded", org_id=str(org_id), event_id=str(event.id), source=event.source)
        return event, True

    async def scan(self, db: AsyncSession, org_id: uuid.UUID) -> ScanResult:
        """
        Classify unchecked events against all non-closed risks.

        An event whose classification failed for any risk stays unchecked
        so the next run retries it; alerts already created are not
        duplicated.
        """
        result = ScanResult()
        events = await event_repo.unchecked(db, org_id, self.batch_limit)
        if not events:
            return result
        risks = await risk_repo.list_filtered(db, org_id, exclude_status=RiskStatus.CLOSED.value)

        for event in events:
            failed = False
            for risk in risks:
                if await alert_repo.find(db, event.id, risk.id) is not None:
                    continue
                try:
                    classification = await self.classifier.classify(risk, event)
                except ExternalServiceFailure as exc:
                    failed = True
                    result.failures.append(BatchItemError(
                        item_id=f"{event.id}:{risk.risk_code}",
                        message=exc.message,
                    ))
                    continue
                result.pairs_classified += 1

                if not classification.is_relevant:
                    continue
                if classification.confidence_score < self.min_confidence:
                    continue
                await self.manager.create_alert(db, org_id, event.id, risk, classification)
                result.alerts_created += 1

            if failed:
                result.events_deferred += 1
            else:
                event.relevance_checked = True
                result.events_checked += 1
            await db.flush()

        logger.info(
            "intelligence_scan_completed",
            org_id=str(org_id),
            events_checked=result.events_checked,
            events_deferred=result.events_deferred,
            alerts_created=result.alerts_created,
            failures=len(result.failures),
        )
        return result
