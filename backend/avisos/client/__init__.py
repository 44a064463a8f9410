"""Asyncio client for the realtime comments stream."""
from avisos.client.api import CommentsApi
from avisos.client.stream import RECONNECT_DELAY_SECONDS, ClientState, CommentStreamClient

__all__ = ["ClientState", "CommentStreamClient", "CommentsApi", "RECONNECT_DELAY_SECONDS"]
