"""Health check router endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(prefix="/health", tags=["health"])


async def check_database_ready(request: Request) -> bool:
    """Return True when the database accepts a lightweight query."""
    try:
        return await request.app.state.database.ping()
    except (SQLAlchemyError, OSError):
        return False


async def check_redis_ready(request: Request) -> bool:
    """Return True when Redis responds to PING, or when Redis is not configured."""
    client = getattr(request.app.state, "redis_client", None)
    if client is None:
        return True
    try:
        return bool(await client.ping())
    except (RedisError, OSError):
        return False


@router.get("/live")
async def live() -> dict[str, str]:
    """Liveness probe endpoint."""
    return {"status": "live"}


@router.get("/ready")
async def ready(
    database_ready: Annotated[bool, Depends(check_database_ready)],
    redis_ready: Annotated[bool, Depends(check_redis_ready)],
) -> dict[str, str]:
    """Readiness probe requiring the database and, when configured, Redis."""
    if not database_ready or not redis_ready:
        raise HTTPException(
            status_code=503,
            detail={"detail": "Service not ready.", "code": "service_unavailable"},
        )
    return {"status": "ready"}
