"""Visited-station ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from subway_tracker.db.base import Base, utcnow

if TYPE_CHECKING:
    from subway_tracker.models.user import User


class VisitedStation(Base):
    """Fact that one user has visited one catalog station."""

    __tablename__ = "visited_stations"
    __table_args__ = (
        UniqueConstraint("user_id", "station_id", name="uq_visited_stations_user_id_station_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    station_id: Mapped[str] = mapped_column(String(64), nullable=False)
    visited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped[User] = relationship(back_populates="visits")
