"""Shared integration-test fixtures backed by a temporary SQLite database."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.config import (
    AppSettings,
    AuthSettings,
    DatabaseSettings,
    RedisSettings,
    Settings,
)

TEST_PIN_HASH_ROUNDS = 4


def sqlite_url(path: Path) -> str:
    """Async SQLAlchemy URL for a database file."""
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture(scope="function")
def database_path(tmp_path: Path) -> Path:
    """Location of the per-test database file."""
    return tmp_path / "tracker.db"


@pytest.fixture(scope="function")
def settings_factory(database_path: Path) -> Callable[..., Settings]:
    """Build settings pointing at the per-test database with fast PIN hashing."""

    def _factory(**auth_overrides: Any) -> Settings:
        auth_values: dict[str, Any] = {
            "pin_hash_rounds": TEST_PIN_HASH_ROUNDS,
            "session_cleanup_interval_seconds": 0,
        }
        auth_values.update(auth_overrides)
        return Settings(
            app=AppSettings(environment="development", log_level="WARNING"),
            database=DatabaseSettings(url=sqlite_url(database_path)),
            redis=RedisSettings(url=None),
            auth=AuthSettings(**auth_values),
        )

    return _factory


@pytest.fixture(scope="function")
async def app_factory(
    settings_factory: Callable[..., Settings],
) -> AsyncIterator[Callable[..., Any]]:
    """Build migrated FastAPI apps; every app built is disposed after the test."""
    from subway_tracker.main import create_app

    apps: list[FastAPI] = []

    async def _factory(**auth_overrides: Any) -> FastAPI:
        settings = settings_factory(**auth_overrides)
        app = create_app(settings)
        await app.state.database.run_migrations(auth_settings=settings.auth)
        apps.append(app)
        return app

    try:
        yield _factory
    finally:
        for app in apps:
            await app.state.database.dispose()


@pytest.fixture(scope="function")
async def app(app_factory: Callable[..., Any]) -> FastAPI:
    """Default migrated application."""
    return await app_factory()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """HTTP client bound to the default application."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as http_client:
        yield http_client


@pytest.fixture(scope="function")
def client_factory(app: FastAPI) -> Callable[[], AsyncClient]:
    """Fresh cookie jars against the same application, one per simulated user."""

    def _factory() -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")

    return _factory


@pytest.fixture(scope="function")
async def db_session(app: FastAPI) -> AsyncIterator[AsyncSession]:
    """Write-capable session on the application's database for seeding and assertions."""
    async with app.state.database.session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def register_user() -> Callable[..., Any]:
    """Register through the API so the client's cookie jar holds the new session."""

    async def _register(
        client: AsyncClient, handle: str, credential: str = "1234"
    ) -> dict[str, Any]:
        response = await client.post(
            "/auth/register", json={"handle": handle, "credential": credential}
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _register
