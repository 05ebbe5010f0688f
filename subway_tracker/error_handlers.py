"""Global exception handlers enforcing API error response contracts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from subway_tracker.middleware.logging import client_ip

VALID_ERROR_CODES = {
    "invalid_request",
    "handle_taken",
    "invalid_credentials",
    "not_authenticated",
    "not_found",
    "method_not_allowed",
    "rate_limited",
    "service_unavailable",
    "store_failure",
    "internal_error",
}

_DEFAULT_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "invalid_request",
    401: "not_authenticated",
    403: "not_authenticated",
    404: "not_found",
    405: "method_not_allowed",
    422: "invalid_request",
    429: "rate_limited",
    503: "service_unavailable",
}

_FIELD_MESSAGES: dict[str, str] = {
    "handle": "Handle must be 3-20 characters.",
    "username": "Handle must be 3-20 characters.",
    "credential": "PIN must be 4-6 digits.",
    "pin": "PIN must be 4-6 digits.",
}

logger = structlog.get_logger(__name__)


def error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized JSON error payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _resolve_error_code(status_code: int, raw_code: str | None) -> str:
    """Resolve a valid machine-readable error code."""
    if raw_code in VALID_ERROR_CODES:
        return raw_code
    if status_code >= 500:
        return "internal_error"
    return _DEFAULT_ERROR_CODE_BY_STATUS.get(status_code, "invalid_request")


def _extract_detail_and_code(detail: Any) -> tuple[str, str | None]:
    """Normalize exception detail payload into message and optional code."""
    if isinstance(detail, dict):
        raw_detail = detail.get("detail", "Request failed.")
        raw_code = detail.get("code")
        return str(raw_detail), str(raw_code) if raw_code is not None else None
    if isinstance(detail, str):
        return detail, None
    return "Request failed.", None


def _describe_validation_errors(errors: Sequence[Any], environment: str) -> str:
    """Turn the first request validation error into a user-facing message."""
    if not errors:
        return "Invalid request payload."
    first = errors[0]
    location = first.get("loc", ()) if isinstance(first, dict) else ()
    field = str(location[-1]) if location else ""
    if isinstance(first, dict) and first.get("type") == "missing" and field in _FIELD_MESSAGES:
        return "Handle and PIN required."
    if field in _FIELD_MESSAGES:
        return _FIELD_MESSAGES[field]
    if environment == "development" and isinstance(first, dict):
        return f"Invalid request payload: {first.get('msg', 'validation error')}."
    return "Invalid request payload."


def _sanitize_detail(detail: str, status_code: int, environment: str) -> str:
    """Hide internal failure details outside development."""
    if environment != "development" and status_code >= 500:
        return "Internal server error."
    return detail


def _extract_user_identifier(request: Request) -> tuple[str | None, str | None]:
    """Extract best-effort user identifiers from request state."""
    user_state = getattr(request.state, "user", None)
    if isinstance(user_state, dict):
        user_id = user_state.get("user_id")
        handle = user_state.get("handle")
        return str(user_id) if user_id else None, str(handle) if handle else None
    return None, None


def _is_guarded_request_path(path: str) -> bool:
    """Return True for auth and visit API paths."""
    return path.startswith("/auth") or path.startswith("/api")


def _correlation_id(request: Request) -> str:
    """Correlation id bound by middleware, or the inbound header."""
    return getattr(
        request.state,
        "correlation_id",
        request.headers.get("x-correlation-id", "unknown"),
    )


def _log_auth_failure(
    request: Request,
    status_code: int,
    detail: str,
    code: str,
) -> None:
    """Emit WARNING-level log for client failures on guarded paths."""
    if status_code < 400 or status_code >= 500:
        return
    if not _is_guarded_request_path(request.url.path):
        return

    user_id, handle = _extract_user_identifier(request)
    logger.warning(
        "auth_failure",
        correlation_id=_correlation_id(request),
        event_type="auth_failure",
        user_id=user_id,
        handle=handle,
        ip_address=client_ip(request),
        success=False,
        status_code=status_code,
        code=code,
        detail=detail,
        path=request.url.path,
        method=request.method,
    )


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing error shape contract."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to contract payload."""
        raw_detail, raw_code = _extract_detail_and_code(exc.detail)
        code = _resolve_error_code(exc.status_code, raw_code)
        detail = raw_detail
        _log_auth_failure(request=request, status_code=exc.status_code, detail=detail, code=code)
        return error_response(status_code=exc.status_code, detail=detail, code=code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation errors to a 400 standardized payload."""
        detail = _describe_validation_errors(exc.errors(), environment)
        code = "invalid_request"
        _log_auth_failure(request=request, status_code=400, detail=detail, code=code)
        return error_response(status_code=400, detail=detail, code=code)

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_failure(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Log store failures and answer with a generic message."""
        logger.error(
            "store_failure",
            correlation_id=_correlation_id(request),
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        detail = _sanitize_detail(str(exc), 500, environment)
        return error_response(status_code=500, detail=detail, code="store_failure")

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Mask internal errors and enforce contract payload."""
        logger.error(
            "unhandled_exception",
            correlation_id=_correlation_id(request),
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        detail = _sanitize_detail(str(exc), 500, environment)
        return error_response(status_code=500, detail=detail, code="internal_error")
