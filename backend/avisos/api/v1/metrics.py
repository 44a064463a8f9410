"""Weekly participation metrics endpoints."""
from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Query
from loguru import logger
from sqlalchemy import func, select

from avisos.core.dependencies import AnyMember, DBSession, Publisher
from avisos.models.metrics import WeeklyMetric
from avisos.schemas.metrics import WeeklyMetricOut, WeeklyMetricPage
from avisos.services.metrics import recalculate_week

router = APIRouter(prefix="/metrics")


@router.get("/weekly", response_model=WeeklyMetricPage)
async def list_weekly_metrics(
    session: DBSession,
    _: AnyMember,
    since: dt.date | None = Query(default=None),
    until: dt.date | None = Query(default=None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
) -> WeeklyMetricPage:
    filters = []
    if since is not None:
        filters.append(WeeklyMetric.week_start >= since)
    if until is not None:
        filters.append(WeeklyMetric.week_end <= until)

    total = (await session.execute(select(func.count(WeeklyMetric.id)).where(*filters))).scalar_one()
    stmt = (
        select(WeeklyMetric)
        .where(*filters)
        .order_by(WeeklyMetric.week_start.desc())
        .offset((page - 1) * size)
        .limit(size)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return WeeklyMetricPage(
        items=[WeeklyMetricOut.model_validate(row) for row in rows],
        total=int(total),
        page=page,
        limit=size,
    )


@router.post("/weekly/recalculate", response_model=WeeklyMetricOut)
async def recalculate_weekly_metrics(
    session: DBSession,
    user: Publisher,
    week: dt.date | None = Query(default=None, description="Any day of the week to recompute"),
) -> WeeklyMetricOut:
    """Recompute the Monday-Sunday aggregate for ``week`` (defaults to today)."""

    metric = await recalculate_week(session, week or dt.date.today())
    logger.bind(week_start=str(metric.week_start), user_id=user.id).info("weekly_metrics_recalculated")
    return WeeklyMetricOut.model_validate(metric)
