"""Comment schemas shared by the REST API and the realtime channel."""
from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field


class CommentAuthor(BaseModel):
    id: int
    name: str
    email: str

    model_config = {"from_attributes": True}


class AnnouncementRef(BaseModel):
    id: int
    title: str

    model_config = {"from_attributes": True}


class CommentOut(BaseModel):
    """Denormalized comment projection with author and announcement context."""

    id: int
    announcement_id: int
    body: str
    created_at: dt.datetime
    author: CommentAuthor
    announcement: AnnouncementRef

    model_config = {"from_attributes": True}


class CommentCreate(BaseModel):
    announcement_id: int = Field(gt=0)
    body: str = Field(min_length=1, max_length=5000)


class CommentPage(BaseModel):
    items: list[CommentOut]
    total: int
    page: int
    limit: int
