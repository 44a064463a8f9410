"""Announcement and image endpoints."""
from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from avisos.core.dependencies import Admin, AnyMember, DBSession, Publisher
from avisos.core.logging import record_validation_error
from avisos.models.announcement import Announcement, AnnouncementImage
from avisos.models.comment import Comment
from avisos.schemas.announcement import (
    AnnouncementCreate,
    AnnouncementOut,
    AnnouncementPage,
    AnnouncementUpdate,
    ImageOut,
    ImageUploadRequest,
    ImageUploadResponse,
)

router = APIRouter(prefix="/announcements")

IMAGE_CACHE_CONTROL = "private, max-age=300"


async def _get_announcement(session: DBSession, announcement_id: int) -> Announcement:
    stmt = (
        select(Announcement)
        .where(Announcement.id == announcement_id)
        .options(selectinload(Announcement.creator))
        .execution_options(populate_existing=True)
    )
    announcement = (await session.execute(stmt)).scalar_one_or_none()
    if announcement is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "announcement_not_found", "message": "Announcement not found."}},
        )
    return announcement


async def _comment_counts(session: DBSession, ids: list[int]) -> dict[int, int]:
    if not ids:
        return {}
    stmt = (
        select(Comment.announcement_id, func.count(Comment.id))
        .where(Comment.announcement_id.in_(ids))
        .group_by(Comment.announcement_id)
    )
    return {row[0]: int(row[1]) for row in (await session.execute(stmt)).all()}


def _to_out(announcement: Announcement, comment_count: int) -> AnnouncementOut:
    out = AnnouncementOut.model_validate(announcement)
    out.comment_count = comment_count
    return out


def _decode_image(request: Request, raw: str) -> bytes:
    # Browsers send data URLs; strip the "data:<mime>;base64," prefix.
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        record_validation_error(request, "invalid_image")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "invalid_image", "message": "Image data is not valid base64."}},
        ) from exc


@router.get("", response_model=AnnouncementPage)
async def list_announcements(
    session: DBSession,
    _: AnyMember,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    active: bool | None = Query(default=None),
) -> AnnouncementPage:
    """Return announcements ordered by most recent week first."""

    filters = []
    if active is not None:
        filters.append(Announcement.active.is_(active))

    total = (await session.execute(select(func.count(Announcement.id)).where(*filters))).scalar_one()
    stmt = (
        select(Announcement)
        .where(*filters)
        .options(selectinload(Announcement.creator))
        .order_by(Announcement.week_start.desc(), Announcement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    announcements = (await session.execute(stmt)).scalars().all()
    counts = await _comment_counts(session, [item.id for item in announcements])
    return AnnouncementPage(
        items=[_to_out(item, counts.get(item.id, 0)) for item in announcements],
        total=int(total),
        page=page,
        limit=limit,
    )


@router.post("", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
async def create_announcement(payload: AnnouncementCreate, session: DBSession, user: Publisher) -> AnnouncementOut:
    announcement = Announcement(
        title=payload.title.strip(),
        description=payload.description,
        week_start=payload.week_start,
        week_end=payload.week_end,
        created_by=user.id,
    )
    session.add(announcement)
    await session.commit()
    announcement = await _get_announcement(session, announcement.id)
    logger.bind(announcement_id=announcement.id, user_id=user.id).info("announcement_created")
    return _to_out(announcement, 0)


@router.get("/{announcement_id}", response_model=AnnouncementOut)
async def read_announcement(announcement_id: int, session: DBSession, _: AnyMember) -> AnnouncementOut:
    announcement = await _get_announcement(session, announcement_id)
    counts = await _comment_counts(session, [announcement.id])
    return _to_out(announcement, counts.get(announcement.id, 0))


@router.put("/{announcement_id}", response_model=AnnouncementOut)
async def update_announcement(
    announcement_id: int,
    payload: AnnouncementUpdate,
    request: Request,
    session: DBSession,
    _: Publisher,
) -> AnnouncementOut:
    announcement = await _get_announcement(session, announcement_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    week_start = changes.get("week_start", announcement.week_start)
    week_end = changes.get("week_end", announcement.week_end)
    if week_end < week_start:
        record_validation_error(request, "invalid_week")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "invalid_week", "message": "week_end must not be before week_start."}},
        )
    for field, value in changes.items():
        setattr(announcement, field, value)
    await session.commit()
    announcement = await _get_announcement(session, announcement_id)
    counts = await _comment_counts(session, [announcement.id])
    return _to_out(announcement, counts.get(announcement.id, 0))


@router.delete("/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_announcement(announcement_id: int, session: DBSession, user: Admin) -> Response:
    announcement = await _get_announcement(session, announcement_id)
    await session.delete(announcement)
    await session.commit()
    logger.bind(announcement_id=announcement_id, user_id=user.id).info("announcement_deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{announcement_id}/images",
    response_model=ImageUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_images(
    announcement_id: int,
    payload: ImageUploadRequest,
    request: Request,
    session: DBSession,
    _: Publisher,
) -> ImageUploadResponse:
    """Attach one or more base64 encoded images to an announcement."""

    await _get_announcement(session, announcement_id)
    images: list[AnnouncementImage] = []
    for upload in payload.images:
        if not upload.mime_type.startswith("image/"):
            record_validation_error(request, "unsupported_media_type")
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail={
                    "error": {
                        "code": "unsupported_media_type",
                        "message": f"Unsupported mime type {upload.mime_type}.",
                    }
                },
            )
        images.append(
            AnnouncementImage(
                announcement_id=announcement_id,
                filename=upload.filename,
                mime_type=upload.mime_type,
                data=_decode_image(request, upload.data_base64),
            )
        )
    session.add_all(images)
    await session.commit()
    for image in images:
        await session.refresh(image)
    return ImageUploadResponse(images=[ImageOut.model_validate(image) for image in images])


@router.get("/{announcement_id}/images", response_model=list[ImageOut])
async def list_images(announcement_id: int, session: DBSession, _: AnyMember) -> list[ImageOut]:
    await _get_announcement(session, announcement_id)
    stmt = (
        select(AnnouncementImage)
        .where(AnnouncementImage.announcement_id == announcement_id)
        .order_by(AnnouncementImage.id.asc())
    )
    return [ImageOut.model_validate(image) for image in (await session.execute(stmt)).scalars().all()]


@router.get("/{announcement_id}/images/{image_id}/raw")
async def read_image(announcement_id: int, image_id: int, session: DBSession, _: AnyMember) -> Response:
    stmt = select(AnnouncementImage).where(
        AnnouncementImage.id == image_id,
        AnnouncementImage.announcement_id == announcement_id,
    )
    image = (await session.execute(stmt)).scalar_one_or_none()
    if image is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "image_not_found", "message": "Image not found."}},
        )
    return Response(
        content=image.data,
        media_type=image.mime_type,
        headers={"Cache-Control": IMAGE_CACHE_CONTROL},
    )
