"""Async SQLAlchemy engine ownership and request-scoped sessions."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Request
from sqlalchemy import event, select
from sqlalchemy.engine.interfaces import DBAPIConnection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import ConnectionPoolEntry, StaticPool

from subway_tracker.config import AuthSettings


def _is_memory_url(url: str) -> bool:
    """Return True for SQLite URLs that point at a private in-memory database."""
    return url.rstrip("/").endswith("sqlite+aiosqlite:") or ":memory:" in url


def _enable_sqlite_foreign_keys(
    dbapi_connection: DBAPIConnection, _connection_record: ConnectionPoolEntry
) -> None:
    """Turn on foreign key enforcement so user deletes cascade."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


class Database:
    """Explicitly constructed handle over the engine and its session factory."""

    def __init__(self, url: str, echo: bool = False) -> None:
        engine_options: dict[str, Any] = {"echo": echo}
        if _is_memory_url(url):
            engine_options["poolclass"] = StaticPool
            engine_options["connect_args"] = {"check_same_thread": False}
        self._url = url
        self._engine = create_async_engine(url, **engine_options)
        event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = async_sessionmaker(
            bind=self._engine, autoflush=False, expire_on_commit=False
        )

    @property
    def url(self) -> str:
        """Database URL this handle was built from."""
        return self._url

    @property
    def engine(self) -> AsyncEngine:
        """Underlying async engine."""
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Factory for new async sessions."""
        return self._session_factory

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async database session for request-scoped use."""
        async with self._session_factory() as session:
            yield session

    async def run_migrations(self, auth_settings: AuthSettings | None = None) -> None:
        """Upgrade the schema to the latest revision on a pooled connection."""
        from subway_tracker.db.schema import upgrade_schema

        async with self._engine.begin() as connection:
            await connection.run_sync(
                upgrade_schema, database_url=self._url, auth_settings=auth_settings
            )

    async def ping(self) -> bool:
        """Return True when the database accepts a lightweight query."""
        async with self._engine.connect() as connection:
            await connection.execute(select(1))
        return True

    async def dispose(self) -> None:
        """Dispose the engine and close pooled connections."""
        await self._engine.dispose()


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the database attached to the running application."""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        yield session
