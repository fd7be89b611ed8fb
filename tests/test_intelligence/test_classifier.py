"""
Risk classifier client tests.

Uses httpx.MockTransport: no network. Covers response shapes, retry on
5xx, no retry on 4xx, malformed bodies and the circuit breaker.
"""

import json
import uuid
from datetime import datetime

import httpx
import pytest

from riskintel.db.models import ExternalEvent, Risk
from riskintel.errors import ErrorCode, ExternalServiceFailure
from riskintel.intelligence.classifier import (
    HttpRiskClassifier,
    build_payload,
    parse_classification,
)
from riskintel.intelligence.resilience import CircuitBreaker, CircuitOpenError, CircuitState

GOOD_BODY = {
    "is_relevant": True,
    "confidence_score": 82,
    "suggested_likelihood_change": 1,
    "impact_change": 0,
    "reasoning": "Supplier named in the article",
    "suggested_controls": ["Dual sourcing"],
    "impact_assessment": "Moderate",
}


def _risk() -> Risk:
    return Risk(
        risk_code="R-007",
        risk_title="Single supplier dependency",
        risk_description="Key component from one vendor",
        category="Operational",
        likelihood_inherent=3,
        impact_inherent=4,
    )


def _event() -> ExternalEvent:
    return ExternalEvent(
        id=uuid.uuid4(),
        source="news.example",
        event_type="supply_chain",
        title="Vendor plant fire",
        summary="Production halted",
        published_date=datetime(2025, 7, 1, 8, 30),
    )


def _classifier(handler, **kwargs) -> HttpRiskClassifier:
    kwargs.setdefault("breaker", CircuitBreaker(name="test", failure_threshold=5))
    kwargs.setdefault("retry_attempts", 2)
    return HttpRiskClassifier(
        base_url="http://classifier.test",
        api_key="secret",
        retry_base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestPayloadAndParsing:
    def test_payload_shape(self):
        payload = build_payload(_risk(), _event())
        assert payload["risk"]["risk_code"] == "R-007"
        assert payload["risk"]["likelihood"] == 3
        assert payload["event"]["published_date"] == "2025-07-01T08:30:00"

    def test_flat_body(self):
        assert parse_classification(GOOD_BODY).confidence_score == 82

    def test_envelope_body(self):
        result = parse_classification({"data": GOOD_BODY})
        assert result.suggested_controls == ["Dual sourcing"]

    def test_out_of_range_confidence(self):
        with pytest.raises(ExternalServiceFailure):
            parse_classification({**GOOD_BODY, "confidence_score": 150})

    def test_missing_fields(self):
        with pytest.raises(ExternalServiceFailure):
            parse_classification({"reasoning": "?"})


@pytest.mark.asyncio
class TestHttpRiskClassifier:
    async def test_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=GOOD_BODY)

        result = await _classifier(handler).classify(_risk(), _event())
        assert result.is_relevant
        assert result.suggested_likelihood_change == 1

        assert len(seen) == 1
        assert seen[0].url.path == "/classify"
        assert seen[0].headers["X-API-Key"] == "secret"
        assert json.loads(seen[0].content)["risk"]["risk_code"] == "R-007"

    async def test_retries_server_errors(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"data": GOOD_BODY})])
        calls = []

        def handler(request):
            calls.append(request)
            return next(responses)

        result = await _classifier(handler).classify(_risk(), _event())
        assert result.confidence_score == 82
        assert len(calls) == 2

    async def test_gives_up_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await _classifier(handler, retry_attempts=2).classify(_risk(), _event())
        assert len(calls) == 3
        assert exc_info.value.status_code == 502

    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="bad key")

        with pytest.raises(ExternalServiceFailure):
            await _classifier(handler).classify(_risk(), _event())
        assert len(calls) == 1

    async def test_transport_errors_are_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalServiceFailure):
            await _classifier(handler, retry_attempts=0).classify(_risk(), _event())

    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(ExternalServiceFailure):
            await _classifier(handler).classify(_risk(), _event())

    async def test_circuit_opens_and_short_circuits(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=60)
        classifier = _classifier(handler, breaker=breaker, retry_attempts=0)

        with pytest.raises(ExternalServiceFailure):
            await classifier.classify(_risk(), _event())
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            await classifier.classify(_risk(), _event())
        assert exc_info.value.code == ErrorCode.CIRCUIT_BREAKER_OPEN
        assert len(calls) == 1


@pytest.mark.asyncio
class TestCircuitBreaker:
    async def test_half_open_success_closes(self):
        breaker = CircuitBreaker(name="t", failure_threshold=1, recovery_timeout=0)

        async def boom():
            raise RuntimeError("down")

        async def ok():
            return "ok"

        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(name="t", failure_threshold=3, recovery_timeout=0)

        async def boom():
            raise RuntimeError("down")

        for _ in range(3):
            with pytest.raises(RuntimeError):
                await breaker.call(boom)
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.recovery_timeout = 60
        assert breaker.state == CircuitState.OPEN
        breaker.recovery_timeout = 0
        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        breaker.recovery_timeout = 60
        assert breaker.state == CircuitState.OPEN

    async def test_success_clears_failure_count(self):
        breaker = CircuitBreaker(name="t", failure_threshold=2, recovery_timeout=60)

        async def boom():
            raise RuntimeError("down")

        async def ok():
            return "ok"

        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        await breaker.call(ok)
        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        assert breaker.state == CircuitState.CLOSED

    async def test_reset(self):
        breaker = CircuitBreaker(name="t", failure_threshold=1, recovery_timeout=60)

        async def boom():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
