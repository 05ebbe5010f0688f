"""Correlation ID middleware."""

from __future__ import annotations

import re
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Correlation-ID"
_SAFE_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_correlation_id(raw_value: str | None) -> str:
    """Reuse a well-formed inbound id, otherwise mint a new one."""
    candidate = (raw_value or "").strip()
    if _SAFE_CORRELATION_ID.match(candidate):
        return candidate
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id visible to logs and the caller."""

    async def dispatch(self, request: Request, call_next) -> Response:
        """Bind correlation id, method and path to structlog context for the request."""
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        request.state.correlation_id = correlation_id
        bound = structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.reset_contextvars(**bound)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
