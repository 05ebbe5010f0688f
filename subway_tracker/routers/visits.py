"""Visited-station routes scoped to the authenticated caller."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.dependencies import get_database_session, get_visit_service, require_user
from subway_tracker.models.user import User
from subway_tracker.schemas.visit import (
    ClearVisitedResponse,
    LeaderboardItem,
    MarkVisitedResponse,
    UnmarkVisitedResponse,
)
from subway_tracker.services.visit_service import VisitService

router = APIRouter(prefix="/api", tags=["visits"])

StationId = Annotated[str, Path(min_length=1, max_length=64)]


@router.get("/visited", response_model=list[str])
async def list_visited(
    user: Annotated[User, Depends(require_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    visit_service: Annotated[VisitService, Depends(get_visit_service)],
) -> list[str]:
    """Return the caller's visited station ids, oldest first."""
    return await visit_service.list_visited(db_session=db_session, user_id=user.id)


@router.post("/visited/{station_id}", response_model=MarkVisitedResponse)
async def mark_visited(
    station_id: StationId,
    user: Annotated[User, Depends(require_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    visit_service: Annotated[VisitService, Depends(get_visit_service)],
) -> MarkVisitedResponse:
    """Mark a station visited; repeating the call leaves one mark."""
    await visit_service.mark_visited(db_session=db_session, user_id=user.id, station_id=station_id)
    return MarkVisitedResponse(station_id=station_id)


@router.delete("/visited/{station_id}", response_model=UnmarkVisitedResponse)
async def unmark_visited(
    station_id: StationId,
    user: Annotated[User, Depends(require_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    visit_service: Annotated[VisitService, Depends(get_visit_service)],
) -> UnmarkVisitedResponse:
    """Remove one mark and report whether it existed."""
    deleted = await visit_service.unmark_visited(
        db_session=db_session, user_id=user.id, station_id=station_id
    )
    return UnmarkVisitedResponse(station_id=station_id, deleted=deleted)


@router.delete("/visited", response_model=ClearVisitedResponse)
async def clear_visited(
    user: Annotated[User, Depends(require_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    visit_service: Annotated[VisitService, Depends(get_visit_service)],
) -> ClearVisitedResponse:
    """Remove every mark owned by the caller."""
    deleted_count = await visit_service.clear_visited(db_session=db_session, user_id=user.id)
    return ClearVisitedResponse(deleted_count=deleted_count)


@router.get("/leaderboard", response_model=list[LeaderboardItem])
async def leaderboard(
    user: Annotated[User, Depends(require_user)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    visit_service: Annotated[VisitService, Depends(get_visit_service)],
) -> list[LeaderboardItem]:
    """Visit counts per user, highest first."""
    del user
    entries = await visit_service.leaderboard(db_session=db_session)
    return [LeaderboardItem(handle=entry.handle, count=entry.count) for entry in entries]
