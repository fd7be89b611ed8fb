"""
Global Error Handler Middleware.

Catches exceptions that escaped the RiskIntelError handlers and returns a
generic JSON body. Stack traces, DB errors and internal paths stay in the
server log, correlated by error_id.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from riskintel.config import settings

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware.

    Response body:
    {
      "error": {"code": "E1000", "message": "..."},
      "error_id": "uuid for log correlation",
      "request_id": "..."
    }
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())
            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {
                "error": {
                    "code": "E1000",
                    "message": "An internal error occurred. Please try again later.",
                },
                "error_id": error_id,
                "request_id": getattr(request.state, "request_id", None),
            }
            if settings.debug:
                body["debug_hint"] = type(exc).__name__
            return JSONResponse(status_code=500, content=body)
