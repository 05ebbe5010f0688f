"""CLI entrypoints for operational tasks."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence

import uvicorn

from subway_tracker.config import Settings, configure_structlog, get_settings
from subway_tracker.core.sessions import SessionService
from subway_tracker.db.session import Database


def _emit(payload: dict[str, object]) -> None:
    """Write one JSON result line to stdout."""
    print(json.dumps(payload))


async def _run_migrate(settings: Settings) -> int:
    """Upgrade the schema to head, migrating legacy rows when present."""
    database = Database(settings.database.url)
    try:
        await database.run_migrations(auth_settings=settings.auth)
    finally:
        await database.dispose()
    _emit({"migrated": True, "database_url": settings.database.url})
    return 0


async def _run_purge_expired_sessions(settings: Settings) -> int:
    """Delete expired sessions once and report how many were removed."""
    database = Database(settings.database.url)
    session_service = SessionService(session_ttl_seconds=settings.auth.session_ttl_seconds)
    try:
        async with database.session_factory() as db_session:
            purged = await session_service.purge_expired(db_session)
    finally:
        await database.dispose()
    _emit({"purged_sessions": purged})
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m subway_tracker.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("migrate", help="Apply schema migrations.")
    subcommands.add_parser("purge-expired-sessions", help="Delete expired login sessions.")
    subcommands.add_parser("serve", help="Run the HTTP API with uvicorn.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_structlog(settings)
    if args.command == "migrate":
        return asyncio.run(_run_migrate(settings))
    if args.command == "purge-expired-sessions":
        return asyncio.run(_run_purge_expired_sessions(settings))
    if args.command == "serve":
        uvicorn.run(
            "subway_tracker.main:app",
            host=settings.app.host,
            port=settings.app.port,
            log_level=settings.app.log_level.lower(),
        )
        return 0
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
