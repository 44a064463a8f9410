"""Weekly participation metrics."""
from __future__ import annotations

import datetime as dt

from sqlalchemy import Date, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from avisos.models.base import Base, TimestampMixin


class WeeklyMetric(TimestampMixin, Base):
    """Aggregated activity for one Monday-Sunday week."""

    __tablename__ = "weekly_metrics"
    __table_args__ = (Index("ix_weekly_metrics_week_start", "week_start"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    week_start: Mapped[dt.date] = mapped_column(Date(), nullable=False, unique=True)
    week_end: Mapped[dt.date] = mapped_column(Date(), nullable=False)
    total_announcements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_comments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
