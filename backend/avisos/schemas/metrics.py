"""Weekly metrics schemas."""
from __future__ import annotations

import datetime as dt

from pydantic import BaseModel


class WeeklyMetricOut(BaseModel):
    id: int
    week_start: dt.date
    week_end: dt.date
    total_announcements: int
    total_comments: int
    active_users: int
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class WeeklyMetricPage(BaseModel):
    items: list[WeeklyMetricOut]
    total: int
    page: int
    limit: int
