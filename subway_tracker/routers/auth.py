"""Authentication routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.config import Settings
from subway_tracker.core.sessions import SessionService
from subway_tracker.dependencies import (
    get_app_settings,
    get_database_session,
    get_optional_user,
    get_session_service,
    get_session_token,
    get_user_service,
)
from subway_tracker.error_handlers import error_response
from subway_tracker.models.user import User
from subway_tracker.schemas.user import (
    AuthSuccessResponse,
    CurrentUserResponse,
    HandleCheckResponse,
    LoginRequest,
    PublicUser,
    RegisterRequest,
    SuccessResponse,
)
from subway_tracker.services.user_service import UserService, UserServiceError

router = APIRouter(prefix="/auth", tags=["auth"])


def _public_user(user: User) -> PublicUser:
    """Project a user row onto its public identity."""
    return PublicUser(id=user.id, handle=user.handle)


def _set_session_cookie(
    response: Response,
    request: Request,
    settings: Settings,
    raw_token: str,
) -> None:
    """Attach the session cookie with the configured lifetime and flags."""
    response.set_cookie(
        key=settings.auth.cookie_name,
        value=raw_token,
        max_age=settings.auth.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.auth.cookie_secure or request.url.scheme == "https",
        path="/",
    )


@router.get("/me", response_model=CurrentUserResponse)
async def me(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> CurrentUserResponse | JSONResponse:
    """Return the caller's identity when a live session exists."""
    if user is None:
        return error_response(
            status_code=401, detail="Not authenticated.", code="not_authenticated"
        )
    return CurrentUserResponse(user=_public_user(user))


@router.post("/register", response_model=AuthSuccessResponse)
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    user_service: Annotated[UserService, Depends(get_user_service)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
) -> AuthSuccessResponse | JSONResponse:
    """Create an account, start a session and set its cookie."""
    try:
        user = await user_service.register_user(
            db_session=db_session,
            handle=payload.handle,
            credential=payload.credential,
        )
    except UserServiceError as exc:
        return error_response(status_code=exc.status_code, detail=exc.detail, code=exc.code)

    raw_token = await session_service.create_session(db_session=db_session, user_id=user.id)
    _set_session_cookie(response, request, settings, raw_token)
    return AuthSuccessResponse(user=_public_user(user))


@router.post("/login", response_model=AuthSuccessResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    user_service: Annotated[UserService, Depends(get_user_service)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
) -> AuthSuccessResponse | JSONResponse:
    """Verify handle/PIN, start a session and set its cookie."""
    user = await user_service.authenticate_user(
        db_session=db_session,
        handle=payload.handle,
        credential=payload.credential,
    )
    if user is None:
        return error_response(
            status_code=401,
            detail="Invalid handle or PIN.",
            code="invalid_credentials",
        )

    raw_token = await session_service.create_session(db_session=db_session, user_id=user.id)
    _set_session_cookie(response, request, settings, raw_token)
    return AuthSuccessResponse(user=_public_user(user))


@router.get("/check/{handle}", response_model=HandleCheckResponse)
async def check_handle(
    handle: str,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> HandleCheckResponse:
    """Report whether a handle is registered; advisory only."""
    exists = await user_service.handle_exists(db_session=db_session, handle=handle)
    return HandleCheckResponse(exists=exists)


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    response: Response,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    session_service: Annotated[SessionService, Depends(get_session_service)],
) -> SuccessResponse:
    """Destroy the caller's session, if any, and clear the cookie."""
    await session_service.delete_session(
        db_session=db_session, raw_token=get_session_token(request)
    )
    response.delete_cookie(
        key=settings.auth.cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.auth.cookie_secure or request.url.scheme == "https",
    )
    return SuccessResponse()
