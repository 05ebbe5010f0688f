"""Database package exports."""

from subway_tracker.db.base import Base
from subway_tracker.db.session import Database, get_db_session

__all__ = ["Base", "Database", "get_db_session"]
