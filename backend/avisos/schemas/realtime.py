"""Wire messages exchanged on the comments channel."""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from avisos.schemas.comment import CommentOut
from avisos.services.events import WELCOME_MESSAGE


class WelcomeEvent(BaseModel):
    type: Literal["welcome"] = "welcome"
    message: str = WELCOME_MESSAGE


class NewCommentEvent(BaseModel):
    """A fully resolved comment; also used for the client's informational echo."""

    type: Literal["new_comment"] = "new_comment"
    comment: CommentOut


BroadcastEvent = Annotated[Union[WelcomeEvent, NewCommentEvent], Field(discriminator="type")]

_adapter: TypeAdapter[WelcomeEvent | NewCommentEvent] = TypeAdapter(BroadcastEvent)


def parse_broadcast_event(raw: str | bytes) -> WelcomeEvent | NewCommentEvent | None:
    """Validate a raw frame; unknown tags and malformed payloads yield ``None``."""

    try:
        return _adapter.validate_json(raw)
    except ValidationError:
        return None


__all__ = ["BroadcastEvent", "NewCommentEvent", "WelcomeEvent", "parse_broadcast_event"]
