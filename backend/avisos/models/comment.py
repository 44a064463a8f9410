"""Comment model."""
from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from avisos.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from avisos.models.announcement import Announcement
    from avisos.models.user import User


class Comment(TimestampMixin, Base):
    """Comment left by a user on an announcement."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    announcement_id: Mapped[int] = mapped_column(
        ForeignKey("announcements.id", ondelete="CASCADE"), index=True, nullable=False
    )
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    author: Mapped["User"] = relationship(back_populates="comments")
    announcement: Mapped["Announcement"] = relationship(back_populates="comments")
