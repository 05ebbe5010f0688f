"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI
from redis import asyncio as redis_async
from sqlalchemy.exc import SQLAlchemyError

from subway_tracker.config import Settings, configure_structlog, get_settings
from subway_tracker.core.sessions import SessionService
from subway_tracker.db.session import Database
from subway_tracker.error_handlers import register_exception_handlers
from subway_tracker.middleware.correlation_id import CorrelationIdMiddleware
from subway_tracker.middleware.logging import LoggingMiddleware
from subway_tracker.middleware.metrics import (
    MetricsMiddleware,
    MetricsRegistry,
    build_metrics_endpoint,
)
from subway_tracker.middleware.rate_limit import RateLimitMiddleware
from subway_tracker.middleware.security_headers import SecurityHeadersMiddleware
from subway_tracker.middleware.tracing import TracingMiddleware
from subway_tracker.routers import auth, health, visits
from subway_tracker.services.user_service import UserService
from subway_tracker.services.visit_service import VisitService

logger = structlog.get_logger(__name__)


async def _purge_sessions_periodically(
    database: Database, session_service: SessionService, interval_seconds: int
) -> None:
    """Delete expired sessions every `interval_seconds` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with database.session_factory() as db_session:
                await session_service.purge_expired(db_session)
        except SQLAlchemyError as exc:
            logger.warning("session_cleanup_failed", error=str(exc))
        except Exception:
            logger.exception("session_cleanup_failed")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Migrate on startup, run session cleanup, release resources on shutdown."""
    settings: Settings = app.state.settings
    database: Database = app.state.database

    if settings.database.run_migrations_on_startup:
        await database.run_migrations(auth_settings=settings.auth)
        logger.info("schema_migrated", database_url=database.url)

    cleanup_task: asyncio.Task[None] | None = None
    interval = settings.auth.session_cleanup_interval_seconds
    if interval > 0:
        cleanup_task = asyncio.create_task(
            _purge_sessions_periodically(database, app.state.session_service, interval)
        )

    logger.info("service_started", port=settings.app.port)
    try:
        yield
    finally:
        if cleanup_task is not None:
            cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task
        redis_client = app.state.redis_client
        if redis_client is not None:
            await redis_client.aclose()
        await database.dispose()
        logger.info("service_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = Database(settings.database.url)
    app.state.user_service = UserService(pin_hash_rounds=settings.auth.pin_hash_rounds)
    app.state.session_service = SessionService(
        session_ttl_seconds=settings.auth.session_ttl_seconds
    )
    app.state.visit_service = VisitService()
    app.state.redis_client = (
        redis_async.from_url(settings.redis.url, decode_responses=True)
        if settings.redis.url
        else None
    )
    app.state.metrics_registry = MetricsRegistry()

    register_exception_handlers(app, environment=settings.app.environment)

    app.add_middleware(TracingMiddleware)
    if app.state.redis_client is not None:
        app.add_middleware(
            RateLimitMiddleware,
            redis_client=app.state.redis_client,
            default_requests_per_minute=settings.rate_limit.default_requests_per_minute,
            login_requests_per_minute=settings.rate_limit.login_requests_per_minute,
        )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(MetricsMiddleware, registry=app.state.metrics_registry)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_api_route(
        "/metrics",
        build_metrics_endpoint(app.state.metrics_registry),
        methods=["GET"],
        include_in_schema=False,
    )
    app.include_router(auth.router)
    app.include_router(visits.router)
    app.include_router(health.router)
    return app


app = create_app()
