"""User registration, lookup and PIN verification services."""

from __future__ import annotations

import structlog
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from subway_tracker.models.user import User

logger = structlog.get_logger(__name__)


class UserServiceError(Exception):
    """Raised when user management operations fail validation."""

    def __init__(self, detail: str, code: str, status_code: int) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code
        self.status_code = status_code


def normalize_handle(handle: str) -> str:
    """Return the canonical lowercase form used for storage and lookups."""
    return handle.strip().lower()


class UserService:
    """Service responsible for account creation and credential verification."""

    def __init__(self, pin_hash_rounds: int = 12) -> None:
        self._credential_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=pin_hash_rounds,
        )

    async def get_user_by_handle(self, db_session: AsyncSession, handle: str) -> User | None:
        """Fetch a user by normalized handle."""
        statement = select(User).where(User.handle == normalize_handle(handle))
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_user(self, db_session: AsyncSession, user_id: int) -> User | None:
        """Fetch a user by primary key."""
        return await db_session.get(User, user_id)

    async def handle_exists(self, db_session: AsyncSession, handle: str) -> bool:
        """Return True when the normalized handle is already registered."""
        statement = select(User.id).where(User.handle == normalize_handle(handle))
        result = await db_session.execute(statement)
        return result.scalar_one_or_none() is not None

    async def register_user(
        self,
        db_session: AsyncSession,
        handle: str,
        credential: str,
    ) -> User:
        """Create a user, failing when the normalized handle is taken."""
        normalized = normalize_handle(handle)
        if await self.handle_exists(db_session=db_session, handle=normalized):
            raise UserServiceError("Handle already taken.", "handle_taken", 400)

        user = User(handle=normalized, credential=self.hash_credential(credential))
        db_session.add(user)
        try:
            await db_session.flush()
        except IntegrityError as exc:
            await db_session.rollback()
            raise UserServiceError("Handle already taken.", "handle_taken", 400) from exc
        await db_session.commit()
        logger.info("user_registered", user_id=user.id, handle=user.handle)
        return user

    async def authenticate_user(
        self,
        db_session: AsyncSession,
        handle: str,
        credential: str,
    ) -> User | None:
        """Authenticate handle/PIN credentials for login."""
        user = await self.get_user_by_handle(db_session=db_session, handle=handle)
        if user is None:
            self._credential_context.dummy_verify()
            logger.info("user_login_failed", reason="unknown_handle")
            return None
        if not self.verify_credential(credential=credential, credential_hash=user.credential):
            logger.info("user_login_failed", reason="credential_mismatch", user_id=user.id)
            return None
        return user

    def hash_credential(self, credential: str) -> str:
        """Generate a bcrypt hash for the provided PIN."""
        return str(self._credential_context.hash(credential))

    def verify_credential(self, credential: str, credential_hash: str) -> bool:
        """Verify a plaintext PIN against the stored bcrypt hash."""
        try:
            return bool(self._credential_context.verify(credential, credential_hash))
        except ValueError:
            # Unparseable stored hash never authenticates.
            return False
