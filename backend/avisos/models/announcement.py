"""Announcement and image models."""
from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from avisos.models.base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:
    from avisos.models.comment import Comment
    from avisos.models.user import User


class Announcement(TimestampMixin, Base):
    """Weekly announcement ("aviso") that comments attach to."""

    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    week_start: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    week_end: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    creator: Mapped["User"] = relationship(back_populates="announcements")
    comments: Mapped[list["Comment"]] = relationship(
        back_populates="announcement", cascade="all, delete-orphan"
    )
    images: Mapped[list["AnnouncementImage"]] = relationship(
        back_populates="announcement", cascade="all, delete-orphan"
    )


class AnnouncementImage(Base):
    """Binary image stored alongside an announcement."""

    __tablename__ = "announcement_images"
    __table_args__ = (Index("ix_announcement_images_announcement_id", "announcement_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    announcement_id: Mapped[int] = mapped_column(
        ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    announcement: Mapped[Announcement] = relationship(back_populates="images")
