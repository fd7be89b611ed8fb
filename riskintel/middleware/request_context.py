"""
Request Context Middleware.

Adds a request_id to every request (taken from X-Request-ID or generated),
binds it with method, path and tenant into structlog contextvars, and
reports timing in X-Response-Time.
"""

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        org = request.headers.get("X-Organization-ID")
        if org:
            structlog.contextvars.bind_contextvars(org_id=org)

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        logger.info("request_completed", status=response.status_code, elapsed_ms=elapsed_ms)
        return response
