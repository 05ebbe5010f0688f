"""Redis-backed sliding-window rate limiting."""

from __future__ import annotations

import math
import time
from typing import Protocol
from uuid import uuid4

import structlog
from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from subway_tracker.middleware.logging import client_ip

logger = structlog.get_logger(__name__)

WINDOW_SECONDS = 60
CREDENTIAL_PATHS = frozenset({"/auth/login", "/auth/register"})
_EXEMPT_PREFIXES = ("/health", "/metrics")


class SlidingWindowRedis(Protocol):
    """Subset of the redis asyncio client the limiter needs."""

    async def zremrangebyscore(self, key: str, min: str | int, max: int) -> int: ...

    async def zcard(self, key: str) -> int: ...

    async def zadd(self, key: str, mapping: dict[str, int]) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client request limits; PIN-accepting routes get the tighter limit.

    Limiting fails open: when Redis errors the request proceeds and a warning is logged.
    """

    def __init__(
        self,
        app,
        redis_client: SlidingWindowRedis,
        default_requests_per_minute: int,
        login_requests_per_minute: int,
    ) -> None:
        super().__init__(app)
        self._redis = redis_client
        self._default_limit = default_requests_per_minute
        self._login_limit = login_requests_per_minute
        self._window_milliseconds = WINDOW_SECONDS * 1000

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path.startswith(_EXEMPT_PREFIXES):
            return await call_next(request)

        limit = self.resolve_limit(path)
        bucket_key = self._bucket_key(request)
        now_ms = int(time.time() * 1000)

        try:
            window_start = now_ms - self._window_milliseconds
            await self._redis.zremrangebyscore(bucket_key, "-inf", window_start)
            if await self._redis.zcard(bucket_key) >= limit:
                logger.warning("rate_limited", path=path, method=request.method, limit=limit)
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Too many requests.", "code": "rate_limited"},
                )
            await self._redis.zadd(bucket_key, {f"{now_ms}:{uuid4()}": now_ms})
            await self._redis.expire(bucket_key, math.ceil(self._window_milliseconds / 1000) + 1)
        except RedisError:
            logger.warning("rate_limit_backend_unavailable", path=path, method=request.method)

        return await call_next(request)

    def resolve_limit(self, path: str) -> int:
        """Per-minute limit that applies to a request path."""
        if path in CREDENTIAL_PATHS:
            return self._login_limit
        return self._default_limit

    def _bucket_key(self, request: Request) -> str:
        # Credential routes share one bucket so register and login attempts add up.
        scope = "credentials" if request.url.path in CREDENTIAL_PATHS else "api"
        return f"rate_limit:{scope}:{client_ip(request)}"

