"""Announcement schemas."""
from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, model_validator


class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=3)
    week_start: dt.date
    week_end: dt.date

    @model_validator(mode="after")
    def _check_week(self) -> "AnnouncementCreate":
        if self.week_end < self.week_start:
            raise ValueError("week_end must not be before week_start")
        return self


class AnnouncementUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, min_length=3)
    week_start: dt.date | None = None
    week_end: dt.date | None = None
    active: bool | None = None


class CreatorOut(BaseModel):
    id: int
    name: str
    email: str

    model_config = {"from_attributes": True}


class AnnouncementOut(BaseModel):
    id: int
    title: str
    description: str
    week_start: dt.date
    week_end: dt.date
    active: bool
    created_by: int
    created_at: dt.datetime
    updated_at: dt.datetime
    creator: CreatorOut | None = None
    comment_count: int = 0

    model_config = {"from_attributes": True}


class AnnouncementPage(BaseModel):
    items: list[AnnouncementOut]
    total: int
    page: int
    limit: int


class ImageUpload(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(min_length=1, max_length=100)
    data_base64: str = Field(min_length=1)


class ImageUploadRequest(BaseModel):
    images: list[ImageUpload] = Field(min_length=1)


class ImageOut(BaseModel):
    id: int
    filename: str
    mime_type: str
    created_at: dt.datetime | None = None

    model_config = {"from_attributes": True}


class ImageUploadResponse(BaseModel):
    images: list[ImageOut]
