"""
RFC 7807 Problem Details exception handling.

Provides standardized error responses for the API following the
"Problem Details for HTTP APIs" specification, plus the domain error
hierarchy raised by the planning engine. Domain errors carry no HTTP
knowledge beyond a default status/code pair used by the handlers below.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.fire-safety-planning.local/problems"


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    from app.middleware.correlation import get_request_id

    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class ErrorCode(str, Enum):
    """Standardized error codes for the planning API."""

    # Authentication & Authorization
    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"

    # Validation
    VALIDATION_ERROR = "VAL_001"
    INVALID_FORMAT = "VAL_002"
    MISSING_FIELD = "VAL_003"
    CONSTRAINT_VIOLATION = "VAL_004"

    # Resource
    NOT_FOUND = "RES_001"
    ALREADY_EXISTS = "RES_002"
    CONFLICT = "RES_003"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"
    OUT_OF_BOUNDS = "BIZ_002"
    PARTIAL_OPERATION = "BIZ_003"

    # External Services
    DATABASE_ERROR = "EXT_004"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs
        errors: List of field-level validation errors (for 422)
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type"
    )
    title: str = Field(
        description="Short, human-readable summary of the problem"
    )
    status: int = Field(
        description="HTTP status code"
    )
    detail: str = Field(
        description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        default=None,
        description="URI reference for this specific occurrence"
    )
    code: str = Field(
        description="Machine-readable error code"
    )
    timestamp: str = Field(
        description="ISO 8601 timestamp"
    )
    trace_id: str = Field(
        description="Unique trace ID for debugging"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Field-level validation errors"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_TYPE_BASE}/biz-002",
                "title": "Unprocessable Entity",
                "status": 422,
                "detail": "Moving visit VISIT-2025-0007 to 04-Jul-2028 exceeds the allowed year range",
                "instance": "/api/v2/planning/weeks/2025/27/moves",
                "code": "BIZ_002",
                "timestamp": "2025-07-01T10:30:00Z",
                "trace_id": "abc123def456"
            }
        }
    }


def _default_title(status_code: int) -> str:
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        502: "Bad Gateway",
        503: "Service Unavailable",
    }
    return titles.get(status_code, "Error")


def _problem_type(code: ErrorCode) -> str:
    return f"{PROBLEM_TYPE_BASE}/{code.value.lower().replace('_', '-')}"


class APIException(HTTPException):
    """
    Base HTTP exception with RFC 7807 support.

    Usage:
        raise APIException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Visit not found",
            instance="/api/v2/visits/123"
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or _default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _utc_timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


# Convenience exception classes

class NotFoundError(APIException):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        resource_id: str,
        instance: Optional[str] = None
    ):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
            instance=instance,
        )


class UnauthorizedError(APIException):
    """Authentication required (401)."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


# Domain errors raised by the planning engine

class SchedulingError(Exception):
    """Base class for planning engine errors."""

    status_code = 400
    code = ErrorCode.BUSINESS_RULE_VIOLATION

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DateParseError(SchedulingError):
    """A date text could not be recognized."""

    status_code = 422
    code = ErrorCode.INVALID_FORMAT

    def __init__(self, text: Any, reason: str = "unrecognized date"):
        self.text = text
        self.reason = reason
        super().__init__(f"Cannot parse date {text!r}: {reason}")


class InvalidWeekError(SchedulingError):
    status_code = 422
    code = ErrorCode.CONSTRAINT_VIOLATION

    def __init__(self, week_number: int, year: int, weeks_in_year: int):
        self.week_number = week_number
        self.year = year
        super().__init__(f"Week {week_number} does not exist in {year} (1-{weeks_in_year})")


class VisitNotFoundError(SchedulingError):
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, visit_id: str):
        self.visit_id = visit_id
        super().__init__(f"Visit {visit_id} was not found")


class ContractNotFoundError(SchedulingError):
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract {contract_id} was not found")


class VisitValidationError(SchedulingError):
    """Visit data breaks a visit invariant (e.g. emergency without complaints)."""

    status_code = 422
    code = ErrorCode.VALIDATION_ERROR


class InvalidVisitDateError(SchedulingError):
    """The visit's stored scheduled date is unparsable, so it cannot be moved."""

    status_code = 422
    code = ErrorCode.INVALID_FORMAT

    def __init__(self, visit_id: str, scheduled_date: Any):
        self.visit_id = visit_id
        self.scheduled_date = scheduled_date
        super().__init__(f"Visit {visit_id} has an unparsable scheduled date {scheduled_date!r}")


class MoveOutOfBoundsError(SchedulingError):
    status_code = 422
    code = ErrorCode.OUT_OF_BOUNDS

    def __init__(self, visit_id: str, new_date: str, max_year_distance: int):
        self.visit_id = visit_id
        self.new_date = new_date
        self.max_year_distance = max_year_distance
        super().__init__(
            f"Moving visit {visit_id} to {new_date} is more than "
            f"{max_year_distance} year(s) away from the current year"
        )


class ContractValidationError(SchedulingError):
    status_code = 422
    code = ErrorCode.VALIDATION_ERROR


class RenewalValidationError(ContractValidationError):
    """Renewal cannot proceed; raised before any write."""


class DirectoryValidationError(SchedulingError):
    """Company or branch data that cannot be stored."""

    status_code = 422
    code = ErrorCode.VALIDATION_ERROR


class StorePersistenceError(SchedulingError):
    """A store write reported failure to a caller that requires success."""

    status_code = 502
    code = ErrorCode.DATABASE_ERROR


# Backend errors raised by the collection backend and caught by stores

class BackendError(Exception):
    """Transport level failure talking to the remote collection."""


class DocumentNotFoundError(BackendError):
    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"No document {doc_id} in {collection}")


class ListenerConflictError(BackendError):
    """The backend refused a listener because its target is already registered."""

    def __init__(self, target_id: str):
        self.target_id = target_id
        super().__init__(f"listener target already registered: {target_id}")


# Exception handlers for FastAPI

def _with_cors(response: JSONResponse, request: Request, allowed_origins: Optional[List[str]]) -> JSONResponse:
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
    return response


def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=_default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    response = JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )
    return _with_cors(response, request, allowed_origins)


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(APIException, handlers["api"])
        app.add_exception_handler(SchedulingError, handlers["domain"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
        logger.warning(
            f"APIException: {exc.code.value} - {exc.detail}",
            extra={
                "trace_id": exc.trace_id,
                "status_code": exc.status_code,
                "path": request.url.path,
            }
        )
        response = JSONResponse(
            status_code=exc.status_code,
            content=exc.to_problem_detail().model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=exc.headers,
        )
        return _with_cors(response, request, allowed_origins)

    async def handle_domain_exception(request: Request, exc: SchedulingError) -> JSONResponse:
        """Map planning engine errors onto problem responses."""
        logger.warning(
            f"{type(exc).__name__}: {exc.message}",
            extra={"status_code": exc.status_code, "path": request.url.path},
        )
        return create_problem_response(
            status_code=exc.status_code,
            code=exc.code,
            detail=exc.message,
            request=request,
            allowed_origins=allowed_origins,
        )

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.FORBIDDEN,
            404: ErrorCode.NOT_FOUND,
            409: ErrorCode.CONFLICT,
            422: ErrorCode.VALIDATION_ERROR,
            500: ErrorCode.INTERNAL_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }

        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        response = create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = str(uuid.uuid4())[:12]

        logger.exception(
            f"Unhandled exception: {type(exc).__name__}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )

        # Don't expose internal details in production
        from app.config import settings
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "api": handle_api_exception,
        "domain": handle_domain_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
