"""Shared FastAPI dependency helpers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.config import Settings
from subway_tracker.core.sessions import SessionService
from subway_tracker.db.session import get_db_session
from subway_tracker.models.user import User
from subway_tracker.services.user_service import UserService
from subway_tracker.services.visit_service import VisitService


async def get_database_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in get_db_session(request):
        yield session


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was built with."""
    return request.app.state.settings


def get_user_service(request: Request) -> UserService:
    """Provide the user service dependency."""
    return request.app.state.user_service


def get_session_service(request: Request) -> SessionService:
    """Provide the session service dependency."""
    return request.app.state.session_service


def get_visit_service(request: Request) -> VisitService:
    """Provide the visit service dependency."""
    return request.app.state.visit_service


def get_session_token(request: Request) -> str | None:
    """Read the raw session token from the configured cookie."""
    settings: Settings = request.app.state.settings
    token = request.cookies.get(settings.auth.cookie_name, "").strip()
    return token or None


async def get_optional_user(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
) -> User | None:
    """Resolve the caller's session cookie to a user, or None."""
    user = await session_service.resolve_session(
        db_session=db_session, raw_token=get_session_token(request)
    )
    if user is not None:
        request.state.user = {"user_id": user.id, "handle": user.handle}
    return user


def require_user(user: Annotated[User | None, Depends(get_optional_user)]) -> User:
    """Reject requests without a live session before any handler work."""
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"detail": "Authentication required.", "code": "not_authenticated"},
        )
    return user
