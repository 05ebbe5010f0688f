"""Security and caching headers middleware."""

from __future__ import annotations

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

_PRIVATE_PREFIXES = ("/api", "/auth")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Harden JSON responses and keep per-user data out of shared caches."""

    _HEADERS: dict[str, str] = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "same-origin",
    }
    _HSTS = "max-age=63072000; includeSubDomains"

    async def dispatch(self, request: Request, call_next) -> Response:
        """Append hardening headers; HSTS only for requests that arrived over TLS."""
        response = await call_next(request)
        for header_name, header_value in self._HEADERS.items():
            response.headers.setdefault(header_name, header_value)
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = self._HSTS
        if request.url.path.startswith(_PRIVATE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        return response
