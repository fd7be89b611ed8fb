"""
Intelligence scanner tests.

Tests: event dedup window, confidence threshold, closed risks skipped,
failed classifications defer the event, re-scan never duplicates alerts.
"""

from datetime import datetime, timedelta, timezone

import pytest

from riskintel.errors import ExternalServiceFailure
from riskintel.intelligence.manager import alert_manager
from riskintel.intelligence.scanner import IntelligenceScanner
from riskintel.intelligence.schemas import AlertStatus, ClassificationResult, ExternalEventCreate
from riskintel.risks.schemas import RiskStatus
from tests.conftest import create_event, create_risk


class FakeClassifier:
    """Answers per risk code; an Exception value is raised instead."""

    def __init__(self, answers: dict):
        self.answers = answers
        self.calls: list[tuple[str, str]] = []

    async def classify(self, risk, event):
        self.calls.append((risk.risk_code, event.title))
        answer = self.answers.get(risk.risk_code)
        if isinstance(answer, Exception):
            raise answer
        return answer or ClassificationResult(is_relevant=False, confidence_score=0)


def relevant(confidence: int, likelihood_change: int = 1) -> ClassificationResult:
    return ClassificationResult(
        is_relevant=True,
        confidence_score=confidence,
        suggested_likelihood_change=likelihood_change,
        reasoning="matches",
        suggested_controls=["Review supplier contracts"],
    )


def event_data(**overrides) -> ExternalEventCreate:
    values = {
        "source": "regulator.example",
        "event_type": "regulatory",
        "title": "New capital requirements announced",
        "published_date": datetime(2025, 7, 1, 9, 0),
    }
    values.update(overrides)
    return ExternalEventCreate(**values)


@pytest.mark.asyncio
class TestRecordEvent:
    async def test_records_new_event(self, db, org):
        scanner = IntelligenceScanner(classifier=FakeClassifier({}))
        event, created = await scanner.record_event(db, org.id, event_data())
        assert created
        assert event.relevance_checked is False
        assert event.fetched_at is not None

    async def test_duplicate_within_window(self, db, org):
        scanner = IntelligenceScanner(classifier=FakeClassifier({}), dedup_window_days=7)
        first, _ = await scanner.record_event(db, org.id, event_data())
        again, created = await scanner.record_event(
            db, org.id, event_data(published_date=datetime(2025, 7, 5, 9, 0))
        )
        assert not created
        assert again.id == first.id

    async def test_same_title_outside_window_is_new(self, db, org):
        scanner = IntelligenceScanner(classifier=FakeClassifier({}), dedup_window_days=7)
        first, _ = await scanner.record_event(db, org.id, event_data())
        later, created = await scanner.record_event(
            db, org.id, event_data(published_date=datetime(2025, 7, 20, 9, 0))
        )
        assert created
        assert later.id != first.id

    async def test_different_source_is_new(self, db, org):
        scanner = IntelligenceScanner(classifier=FakeClassifier({}))
        await scanner.record_event(db, org.id, event_data())
        _, created = await scanner.record_event(db, org.id, event_data(source="news.example"))
        assert created

    async def test_timezone_aware_dates_stored_as_utc(self, db, org):
        scanner = IntelligenceScanner(classifier=FakeClassifier({}))
        published = datetime(2025, 7, 1, 11, 0, tzinfo=timezone(timedelta(hours=2)))
        event, _ = await scanner.record_event(db, org.id, event_data(published_date=published))
        assert event.published_date == datetime(2025, 7, 1, 9, 0)

    async def test_dedup_is_per_tenant(self, db, org, other_org):
        scanner = IntelligenceScanner(classifier=FakeClassifier({}))
        await scanner.record_event(db, org.id, event_data())
        _, created = await scanner.record_event(db, other_org.id, event_data())
        assert created


@pytest.mark.asyncio
class TestScan:
    async def test_creates_alerts_above_threshold_only(self, db, org):
        await create_risk(db, org.id, "R-001")
        await create_risk(db, org.id, "R-002")
        await create_risk(db, org.id, "R-003")
        await create_risk(db, org.id, "R-004", status=RiskStatus.CLOSED)
        event = await create_event(db, org.id, title="Port strike")

        classifier = FakeClassifier({
            "R-001": relevant(90),
            "R-002": relevant(69),
            "R-004": relevant(99),
        })
        scanner = IntelligenceScanner(classifier=classifier, min_confidence=70)
        result = await scanner.scan(db, org.id)

        assert result.events_checked == 1
        assert result.events_deferred == 0
        assert result.pairs_classified == 3
        assert result.alerts_created == 1
        assert {code for code, _ in classifier.calls} == {"R-001", "R-002", "R-003"}

        alerts = await alert_manager.list_alerts(db, org.id)
        assert len(alerts) == 1
        assert alerts[0].risk_code == "R-001"
        assert alerts[0].status == AlertStatus.PENDING
        assert alerts[0].suggested_controls == ["Review supplier contracts"]
        assert event.relevance_checked is True

    async def test_threshold_is_inclusive(self, db, org):
        await create_risk(db, org.id, "R-001")
        await create_event(db, org.id)
        scanner = IntelligenceScanner(
            classifier=FakeClassifier({"R-001": relevant(70)}), min_confidence=70
        )
        result = await scanner.scan(db, org.id)
        assert result.alerts_created == 1

    async def test_checked_events_are_not_rescanned(self, db, org):
        await create_risk(db, org.id, "R-001")
        await create_event(db, org.id)
        classifier = FakeClassifier({"R-001": relevant(90)})
        scanner = IntelligenceScanner(classifier=classifier)

        await scanner.scan(db, org.id)
        second = await scanner.scan(db, org.id)
        assert second.events_checked == 0
        assert len(classifier.calls) == 1

    async def test_failure_defers_event_and_rescan_does_not_duplicate(self, db, org):
        await create_risk(db, org.id, "R-001")
        await create_risk(db, org.id, "R-002")
        event = await create_event(db, org.id)

        failing = FakeClassifier({
            "R-001": relevant(90),
            "R-002": ExternalServiceFailure("risk_classifier", "HTTP 503"),
        })
        result = await IntelligenceScanner(classifier=failing).scan(db, org.id)
        assert result.events_deferred == 1
        assert result.events_checked == 0
        assert result.alerts_created == 1
        assert len(result.failures) == 1
        assert result.failures[0].item_id.endswith(":R-002")
        assert event.relevance_checked is False

        recovered = FakeClassifier({"R-001": relevant(90), "R-002": relevant(80)})
        result = await IntelligenceScanner(classifier=recovered).scan(db, org.id)
        assert result.events_checked == 1
        assert result.alerts_created == 1
        assert [code for code, _ in recovered.calls] == ["R-002"]

        alerts = await alert_manager.list_alerts(db, org.id)
        assert sorted(a.risk_code for a in alerts) == ["R-001", "R-002"]
        assert event.relevance_checked is True

    async def test_no_events(self, db, org):
        await create_risk(db, org.id, "R-001")
        classifier = FakeClassifier({})
        result = await IntelligenceScanner(classifier=classifier).scan(db, org.id)
        assert result.events_checked == 0
        assert classifier.calls == []

    async def test_scan_never_changes_scores(self, db, org):
        risk = await create_risk(db, org.id, "R-001", likelihood=2, impact=2)
        await create_event(db, org.id)
        await IntelligenceScanner(
            classifier=FakeClassifier({"R-001": relevant(95, likelihood_change=3)})
        ).scan(db, org.id)
        await db.refresh(risk)
        assert (risk.likelihood_inherent, risk.impact_inherent) == (2, 2)
        assert risk.version == 1
