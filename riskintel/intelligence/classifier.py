"""
Risk Classifier — client for the external relevance classifier.

The classifier is an external service: given one risk and one external
event it answers whether the event is relevant, how confident it is, and
which likelihood/impact deltas it suggests. This module only transports
and validates that answer.

Accepted response shapes:
    {"is_relevant": true, "confidence_score": 82, ...}
    {"data": {"is_relevant": true, ...}}
"""

from typing import Optional, Protocol

import httpx
import pydantic
import structlog

from riskintel.config import settings
from riskintel.db.models import ExternalEvent, Risk
from riskintel.errors import ExternalServiceFailure
from riskintel.intelligence.resilience import CircuitBreaker, classifier_breaker, retry_with_backoff
from riskintel.intelligence.schemas import ClassificationResult

logger = structlog.get_logger(__name__)

SERVICE_NAME = "risk_classifier"


class RiskClassifier(Protocol):
    async def classify(self, risk: Risk, event: ExternalEvent) -> ClassificationResult:
        ...


class _ServerError(Exception):
    """5xx from the classifier; worth retrying."""


def build_payload(risk: Risk, event: ExternalEvent) -> dict:
    return {
        "risk": {
            "risk_code": risk.risk_code,
            "risk_title": risk.risk_title,
            "risk_description": risk.risk_description,
            "category": risk.category,
            "likelihood": risk.likelihood_inherent,
            "impact": risk.impact_inherent,
        },
        "event": {
            "source": event.source,
            "event_type": event.event_type,
            "title": event.title,
            "summary": event.summary,
            "url": event.url,
            "published_date": event.published_date.isoformat(),
        },
    }


def parse_classification(body) -> ClassificationResult:
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        body = body["data"]
    try:
        return ClassificationResult.model_validate(body)
    except pydantic.ValidationError as exc:
        raise ExternalServiceFailure(
            SERVICE_NAME,
            "malformed classification response",
            details={"errors": exc.errors(include_url=False)[:5]},
        )


class HttpRiskClassifier:
    """
    HTTP client for the classifier.

    Transport errors and 5xx responses are retried with backoff; everything
    goes through a circuit breaker. Any failure reaches the caller as
    ExternalServiceFailure.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_base_delay: float = 0.5,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.classifier_url).rstrip("/")
        self.api_key = settings.classifier_api_key if api_key is None else api_key
        self.timeout = timeout or settings.classifier_timeout_seconds
        self.retry_attempts = (
            settings.classifier_retry_attempts if retry_attempts is None else retry_attempts
        )
        self.retry_base_delay = retry_base_delay
        self.breaker = breaker or classifier_breaker
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def _post(self, payload: dict) -> dict:
        async with self._client() as client:
            resp = await client.post("/classify", json=payload)
        if resp.status_code >= 500:
            raise _ServerError(f"HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise ExternalServiceFailure(
                SERVICE_NAME,
                f"HTTP {resp.status_code}",
                details={"body": resp.text[:500]},
            )
        try:
            return resp.json()
        except ValueError:
            raise ExternalServiceFailure(SERVICE_NAME, "response is not JSON")

    async def _post_with_retry(self, payload: dict) -> dict:
        return await retry_with_backoff(
            lambda: self._post(payload),
            max_retries=self.retry_attempts,
            base_delay=self.retry_base_delay,
            retry_on=(httpx.TransportError, _ServerError),
            operation_name="classify",
        )

    async def classify(self, risk: Risk, event: ExternalEvent) -> ClassificationResult:
        try:
            body = await self.breaker.call(self._post_with_retry, build_payload(risk, event))
        except ExternalServiceFailure:
            raise
        except (httpx.HTTPError, _ServerError) as exc:
            logger.warning(
                "classifier_unavailable",
                risk_code=risk.risk_code,
                event_id=str(event.id),
                error=str(exc),
            )
            raise ExternalServiceFailure(SERVICE_NAME, str(exc) or type(exc).__name__)

        result = parse_classification(body)
        logger.debug(
            "classifier_result",
            risk_code=risk.risk_code,
            event_id=str(event.id),
            relevant=result.is_relevant,
            confidence=result.confidence_score,
        )
        return result
