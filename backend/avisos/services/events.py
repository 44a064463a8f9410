"""Event topic and realtime channel constants."""
from __future__ import annotations

COMMENT_CREATED = "comment:created"

COMMENTS_CHANNEL_PATH = "/comments"
WELCOME_MESSAGE = "Connected to comments stream"

__all__ = ["COMMENT_CREATED", "COMMENTS_CHANNEL_PATH", "WELCOME_MESSAGE"]
