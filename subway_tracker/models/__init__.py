"""ORM model exports."""

from subway_tracker.models.session import Session
from subway_tracker.models.user import User
from subway_tracker.models.visit import VisitedStation

__all__ = ["Session", "User", "VisitedStation"]
