"""API error envelope, error codes and input validators.

Error responses have the shape:
    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable error codes, grouped by HTTP status."""

    # 400
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_FIELD = "MISSING_FIELD"
    # 404
    NOT_FOUND = "NOT_FOUND"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    # 409
    CONFLICT = "CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_DEFAULT_CODES = {
    400: ErrorCode.INVALID_INPUT,
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: ErrorCode.NOT_FOUND,
    408: "TIMEOUT",
    409: ErrorCode.CONFLICT,
    503: "SERVICE_UNAVAILABLE",
    507: "INSUFFICIENT_STORAGE",
}


class ApiError(HTTPException):
    """HTTPException carrying an error code and optional details."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        details: Any = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.code = code or _DEFAULT_CODES.get(status_code, ErrorCode.INTERNAL_ERROR)
        self.message = message
        self.details = details


def error_body(code: str, message: str, details: Any = None) -> dict:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


def not_found(resource: str) -> ApiError:
    return ApiError(404, f"{resource} not found", ErrorCode.NOT_FOUND)


def bad_request(message: str, details: Any = None) -> ApiError:
    return ApiError(400, message, ErrorCode.INVALID_INPUT, details)


def handle_database_error(exc: SQLAlchemyError) -> ApiError:
    """Translate a SQLAlchemy error into an ApiError."""
    if isinstance(exc, NoResultFound):
        return ApiError(404, "Record not found", ErrorCode.RESOURCE_NOT_FOUND)
    if isinstance(exc, IntegrityError):
        text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
        if "unique" in text:
            return ApiError(409, "A record with this value already exists", ErrorCode.DUPLICATE_ENTRY)
        if "foreign key" in text:
            return ApiError(400, "Referenced record does not exist", ErrorCode.INVALID_INPUT)
    logger.error(f"Database error: {exc}")
    return ApiError(500, "Database operation failed", ErrorCode.DATABASE_ERROR)


def classify_service_error(exc: Exception) -> tuple[int, bool]:
    """Pick a status code for an upstream service failure.

    Returns:
        Tuple of (status_code, retryable).
    """
    message = str(exc).lower()
    if "no space left" in message:
        return 507, False
    if "timeout" in message or "timed out" in message:
        return 408, True
    if "connection" in message or "econnreset" in message or "enotfound" in message:
        return 503, True
    return 500, False


def service_error(exc: Exception, context: str) -> ApiError:
    """Wrap an upstream failure in an ApiError with a retryable flag."""
    status, retryable = classify_service_error(exc)
    return ApiError(status, f"{context}: {exc}", details={"retryable": retryable})


# ============================================================================
# Validators
# ============================================================================


def validate_required_fields(data: dict, fields: Iterable[str]) -> None:
    """Raise 400 MISSING_FIELD naming every absent or empty field."""
    missing = [f for f in fields if data.get(f) is None or data.get(f) == ""]
    if missing:
        raise ApiError(
            400,
            f"Missing required fields: {', '.join(missing)}",
            ErrorCode.MISSING_FIELD,
            {"missingFields": missing},
        )


def validate_enum(value: Any, allowed: Iterable[Any], field: str) -> None:
    allowed = list(allowed)
    if value not in allowed:
        raise ApiError(
            400,
            f"{field} must be one of: {', '.join(str(a) for a in allowed)}",
            ErrorCode.VALIDATION_ERROR,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_range(value: Any, minimum: float, maximum: float, field: str) -> None:
    if not _is_number(value) or not minimum <= value <= maximum:
        raise ApiError(
            400, f"{field} must be between {minimum} and {maximum}", ErrorCode.VALIDATION_ERROR
        )


def validate_positive_number(value: Any, field: str) -> None:
    if not _is_number(value) or value <= 0:
        raise ApiError(400, f"{field} must be a positive number", ErrorCode.VALIDATION_ERROR)


def validate_non_negative_number(value: Any, field: str) -> None:
    if not _is_number(value) or value < 0:
        raise ApiError(400, f"{field} must be a non-negative number", ErrorCode.VALIDATION_ERROR)


def validate_string_length(
    value: Any, field: str, min_length: int = 0, max_length: int | None = None
) -> None:
    if not isinstance(value, str):
        raise ApiError(400, f"{field} must be a string", ErrorCode.VALIDATION_ERROR)
    if len(value) < min_length:
        raise ApiError(
            400, f"{field} must be at least {min_length} characters", ErrorCode.VALIDATION_ERROR
        )
    if max_length is not None and len(value) > max_length:
        raise ApiError(
            400, f"{field} must be at most {max_length} characters", ErrorCode.VALIDATION_ERROR
        )


# ============================================================================
# Exception handlers
# ============================================================================


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details),
    )


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _DEFAULT_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body(ErrorCode.VALIDATION_ERROR, "Invalid request", details),
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    error = handle_database_error(exc)
    return await api_error_handler(request, error)
