"""Database-backed login session management."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from hashlib import sha256

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.models.session import Session
from subway_tracker.models.user import User

TOKEN_BYTES = 24

logger = structlog.get_logger(__name__)


class SessionService:
    """Service for session creation, resolution, deletion and cleanup."""

    def __init__(self, session_ttl_seconds: int) -> None:
        self._session_ttl_seconds = session_ttl_seconds

    @property
    def session_ttl_seconds(self) -> int:
        """Lifetime of newly issued sessions."""
        return self._session_ttl_seconds

    async def create_session(self, db_session: AsyncSession, user_id: int) -> str:
        """Persist a new session for the user and return its raw token."""
        raw_token = self.generate_token()
        now = datetime.now(UTC)
        session_row = Session(
            id=self._hash_token(raw_token),
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(seconds=self._session_ttl_seconds),
        )
        try:
            db_session.add(session_row)
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        logger.info("session_created", user_id=user_id)
        return raw_token

    async def resolve_session(self, db_session: AsyncSession, raw_token: str | None) -> User | None:
        """Return the user bound to an unexpired session, or None."""
        if not raw_token:
            return None
        statement = (
            select(User)
            .join(Session, Session.user_id == User.id)
            .where(
                Session.id == self._hash_token(raw_token),
                Session.expires_at > datetime.now(UTC),
            )
        )
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def delete_session(self, db_session: AsyncSession, raw_token: str | None) -> bool:
        """Delete the session for a raw token; missing tokens are not an error."""
        if not raw_token:
            return False
        statement = delete(Session).where(Session.id == self._hash_token(raw_token))
        result = await db_session.execute(statement)
        await db_session.commit()
        deleted = bool(result.rowcount)
        if deleted:
            logger.info("session_deleted")
        return deleted

    async def purge_expired(self, db_session: AsyncSession) -> int:
        """Delete every session whose expiry has passed and return the count."""
        statement = delete(Session).where(Session.expires_at <= datetime.now(UTC))
        result = await db_session.execute(statement)
        await db_session.commit()
        purged = int(result.rowcount or 0)
        logger.info("sessions_purged", count=purged)
        return purged

    @staticmethod
    def generate_token() -> str:
        """Generate an opaque, URL-safe session token."""
        return secrets.token_hex(TOKEN_BYTES)

    @staticmethod
    def _hash_token(raw_token: str) -> str:
        """Hash token with SHA-256 for persistent storage."""
        return sha256(raw_token.encode("utf-8")).hexdigest()
