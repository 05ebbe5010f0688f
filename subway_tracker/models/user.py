"""User ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from subway_tracker.db.base import Base, utcnow

if TYPE_CHECKING:
    from subway_tracker.models.session import Session
    from subway_tracker.models.visit import VisitedStation


class User(Base):
    """Account identified by a lowercase handle and a hashed PIN."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    handle: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    credential: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    sessions: Mapped[list[Session]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    visits: Mapped[list[VisitedStation]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
