"""
Failure handling for the relevance classifier.

Transient classifier errors are retried a few times with a growing pause;
a run of failed classify calls trips a breaker so a scan stops waiting on
a service that is down.
"""

import asyncio
import random
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

from riskintel.config import settings
from riskintel.errors import ErrorCode, ExternalServiceFailure

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_RETRY_DELAY = 8.0


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay: float = 0.5,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
) -> T:
    """Await ``fn`` up to ``max_retries + 1`` times, doubling the pause each time."""
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error("retry_exhausted", operation=operation_name, attempts=attempt + 1)
                raise
            pause = min(base_delay * 2 ** attempt, MAX_RETRY_DELAY)
            if pause:
                pause += random.uniform(0, base_delay / 2)
            attempt += 1
            logger.warning(
                "retrying", operation=operation_name, attempt=attempt, pause=round(pause, 2), error=str(exc)
            )
            await asyncio.sleep(pause)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(ExternalServiceFailure):
    def __init__(self, name: str):
        super().__init__(service=name, message="circuit breaker is open", code=ErrorCode.CIRCUIT_BREAKER_OPEN)


class CircuitBreaker:
    """
    Counts consecutive failures of the wrapped call.

    At ``failure_threshold`` the breaker opens and rejects calls for
    ``recovery_timeout`` seconds. The next call after that is a trial:
    success closes the breaker, failure opens it again.
    """

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: float = 30.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.reset()

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        state = self.state
        if state == CircuitState.OPEN:
            logger.warning("circuit_open_rejected", breaker=self.name)
            raise CircuitOpenError(self.name)

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._failures += 1
            if state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._opened_at = time.monotonic()
                logger.warning("circuit_opened", breaker=self.name, failures=self._failures)
            raise

        if state == CircuitState.HALF_OPEN:
            logger.info("circuit_closed", breaker=self.name)
        self.reset()
        return result

    def reset(self) -> None:
        self._failures = 0
        self._opened_at = None


classifier_breaker = CircuitBreaker(
    name="risk_classifier",
    failure_threshold=settings.classifier_breaker_failures,
    recovery_timeout=settings.classifier_breaker_cooldown_seconds,
)
