"""Per-user visited-station marks and the cross-user leaderboard."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.models.user import User
from subway_tracker.models.visit import VisitedStation

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LeaderboardEntry:
    """Visit count for one user."""

    handle: str
    count: int


class VisitService:
    """Scoped CRUD over visit marks; every call is keyed by the caller's user id."""

    async def list_visited(self, db_session: AsyncSession, user_id: int) -> list[str]:
        """Return station ids visited by the user, oldest visit first."""
        statement = (
            select(VisitedStation.station_id)
            .where(VisitedStation.user_id == user_id)
            .order_by(VisitedStation.visited_at, VisitedStation.id)
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def mark_visited(self, db_session: AsyncSession, user_id: int, station_id: str) -> None:
        """Insert or refresh the mark for (user, station)."""
        now = datetime.now(UTC)
        statement = (
            sqlite_insert(VisitedStation)
            .values(user_id=user_id, station_id=station_id, visited_at=now)
            .on_conflict_do_update(
                index_elements=["user_id", "station_id"],
                set_={"visited_at": now},
            )
        )
        await db_session.execute(statement)
        await db_session.commit()

    async def unmark_visited(self, db_session: AsyncSession, user_id: int, station_id: str) -> bool:
        """Delete one mark and report whether a row existed."""
        statement = delete(VisitedStation).where(
            VisitedStation.user_id == user_id,
            VisitedStation.station_id == station_id,
        )
        result = await db_session.execute(statement)
        await db_session.commit()
        return bool(result.rowcount)

    async def clear_visited(self, db_session: AsyncSession, user_id: int) -> int:
        """Delete every mark owned by the user and return the count removed."""
        statement = delete(VisitedStation).where(VisitedStation.user_id == user_id)
        result = await db_session.execute(statement)
        await db_session.commit()
        deleted = int(result.rowcount or 0)
        logger.info("visits_cleared", user_id=user_id, count=deleted)
        return deleted

    async def leaderboard(self, db_session: AsyncSession) -> list[LeaderboardEntry]:
        """Return visit counts per user, highest first, ties broken by handle."""
        visit_count = func.count(VisitedStation.id)
        statement = (
            select(User.handle, visit_count.label("visit_count"))
            .outerjoin(VisitedStation, VisitedStation.user_id == User.id)
            .group_by(User.id, User.handle)
            .order_by(visit_count.desc(), User.handle)
        )
        result = await db_session.execute(statement)
        return [LeaderboardEntry(handle=row.handle, count=int(row.visit_count)) for row in result]
