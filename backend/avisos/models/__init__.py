"""Database models package."""
from avisos.models.announcement import Announcement, AnnouncementImage
from avisos.models.base import Base
from avisos.models.comment import Comment
from avisos.models.metrics import WeeklyMetric
from avisos.models.user import User, UserRole

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Announcement",
    "AnnouncementImage",
    "Comment",
    "WeeklyMetric",
]
