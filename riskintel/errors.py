"""
Application Exceptions Module.

Centralized exception definitions with:
- Structured error responses
- HTTP status code mapping
- Error codes for client handling
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Application error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    CONFLICT = "E1003"

    # Lifecycle errors (2xxx)
    INVALID_TRANSITION = "E2000"
    ALREADY_APPLIED = "E2001"
    BATCH_FAILED = "E2002"

    # Concurrency errors (3xxx)
    VERSION_CONFLICT = "E3000"
    PERIOD_ALREADY_COMMITTED = "E3001"

    # External service errors (5xxx)
    EXTERNAL_SERVICE_ERROR = "E5000"
    CIRCUIT_BREAKER_OPEN = "E5001"

    # Data errors (6xxx)
    INVALID_PERIOD = "E6000"
    IMMUTABLE_RECORD = "E6001"


# ============================================================================
# ERROR RESPONSE MODEL
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """
    Standard error response.

    All API errors return this unified format for consistency.
    """

    error: ErrorDetail
    request_id: Optional[str] = None
    timestamp: Optional[str] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class RiskIntelError(Exception):
    """Base exception for the engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                message=self.message,
                field=self.field,
                details=self.details,
            ),
            request_id=request_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class ValidationError(RiskIntelError):
    """Malformed input or a request that is invalid for the current state."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=400,
            field=field,
            details=details,
        )


class InvalidTransitionError(ValidationError):
    """Alert is not in the source state required by the requested action."""

    def __init__(self, alert_id: str, status: str, action: str):
        super().__init__(
            message=f"Cannot {action} alert {alert_id} in status '{status}'",
            code=ErrorCode.INVALID_TRANSITION,
            details={"alert_id": alert_id, "status": status, "action": action},
        )


class AlertAlreadyAppliedError(ValidationError):
    """Re-applying an applied alert is rejected, never a second mutation."""

    def __init__(self, alert_id: str):
        super().__init__(
            message=f"Alert {alert_id} is already applied",
            code=ErrorCode.ALREADY_APPLIED,
            details={"alert_id": alert_id},
        )


class InvalidPeriodError(ValidationError):
    """Period string or value could not be parsed."""

    def __init__(self, value: str):
        super().__init__(
            message=f"Invalid period: {value!r} (expected e.g. 'Q3 2025')",
            code=ErrorCode.INVALID_PERIOD,
            field="period",
            details={"value": value},
        )


class NotFoundError(RiskIntelError):
    """Resource not found."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            message=f"{resource_type} not found: {resource_id}",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ConflictError(RiskIntelError):
    """Concurrent modification or duplicate create. Caller may re-read and retry."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.CONFLICT,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            details=details,
        )


class VersionConflictError(ConflictError):
    """Compare-and-set on a version marker found a newer version."""

    def __init__(self, resource_type: str, resource_id: str, expected_version: int):
        super().__init__(
            message=f"{resource_type} {resource_id} was modified concurrently",
            code=ErrorCode.VERSION_CONFLICT,
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "expected_version": expected_version,
            },
        )


class PeriodAlreadyCommittedError(ConflictError):
    """A commit for this (year, quarter) already exists."""

    def __init__(self, period: str):
        super().__init__(
            message=f"Period {period} already committed",
            code=ErrorCode.PERIOD_ALREADY_COMMITTED,
            details={"period": period},
        )


class ExternalServiceFailure(RiskIntelError):
    """Classifier or feed unreachable / returned garbage."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
    ):
        super().__init__(
            message=f"External service error ({service}): {message}",
            code=code,
            status_code=502,
            details={"service": service, **(details or {})},
        )


class ImmutableRecordError(RiskIntelError):
    """Attempted update of a record that is frozen once written."""

    def __init__(self, record_type: str, fields: list[str]):
        super().__init__(
            message=f"{record_type} is immutable (attempted change: {', '.join(fields)})",
            code=ErrorCode.IMMUTABLE_RECORD,
            status_code=500,
            details={"record_type": record_type, "fields": fields},
        )


class BatchFailedError(RiskIntelError):
    """Every item of a batch failed. Partial failures are NOT exceptions."""

    def __init__(self, operation: str, errors: list[dict]):
        super().__init__(
            message=f"{operation} failed for every item",
            code=ErrorCode.BATCH_FAILED,
            status_code=422,
            details={"operation": operation, "errors": errors[:50]},
        )


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def riskintel_exception_handler(
    request: Request,
    exc: RiskIntelError,
) -> JSONResponse:
    """Handle RiskIntelError exceptions."""
    request_id = getattr(request.state, "request_id", None)

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "riskintel_error",
        error_code=exc.code.value,
        message=exc.message,
        status_code=exc.status_code,
        request_id=request_id,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id).model_dump(),
    )


def register_exception_handlers(app) -> None:
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(RiskIntelError, riskintel_exception_handler)
