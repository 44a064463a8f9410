"""Weekly participation metrics aggregation."""
from __future__ import annotations

import datetime as dt

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.models.announcement import Announcement
from avisos.models.comment import Comment
from avisos.models.metrics import WeeklyMetric


def week_range(day: dt.date) -> tuple[dt.date, dt.date]:
    """Return the Monday and Sunday of the week containing ``day``."""

    monday = day - dt.timedelta(days=day.weekday())
    return monday, monday + dt.timedelta(days=6)


async def recalculate_week(session: AsyncSession, day: dt.date) -> WeeklyMetric:
    """Recompute and upsert the metrics row for the week containing ``day``."""

    week_start, week_end = week_range(day)
    window_start = dt.datetime.combine(week_start, dt.time.min, tzinfo=dt.timezone.utc)
    window_end = window_start + dt.timedelta(days=7)

    announcement_filter = (Announcement.week_start >= week_start, Announcement.week_end <= week_end)
    comment_filter = (Comment.created_at >= window_start, Comment.created_at < window_end)

    total_announcements = (
        await session.execute(select(func.count(Announcement.id)).where(*announcement_filter))
    ).scalar_one()
    total_comments = (await session.execute(select(func.count(Comment.id)).where(*comment_filter))).scalar_one()

    creators = (await session.execute(select(Announcement.created_by).where(*announcement_filter).distinct())).scalars()
    commenters = (await session.execute(select(Comment.author_id).where(*comment_filter).distinct())).scalars()
    active_users = len(set(creators) | set(commenters))

    metric = (
        await session.execute(select(WeeklyMetric).where(WeeklyMetric.week_start == week_start))
    ).scalar_one_or_none()
    if metric is None:
        metric = WeeklyMetric(week_start=week_start, week_end=week_end)
        session.add(metric)
    metric.total_announcements = int(total_announcements)
    metric.total_comments = int(total_comments)
    metric.active_users = active_users
    await session.commit()
    await session.refresh(metric)
    return metric


__all__ = ["recalculate_week", "week_range"]
