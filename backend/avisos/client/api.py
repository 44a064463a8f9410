"""REST collaborator used by the comment stream client."""
from __future__ import annotations

import httpx

from avisos.schemas.comment import CommentOut


class CommentsApi:
    """Thin httpx wrapper over the comments endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    async def list_comments(self, announcement_id: int) -> list[CommentOut]:
        """Return the announcement's comments, newest first."""

        response = await self._client.get(f"/api/v1/comments/announcement/{announcement_id}")
        response.raise_for_status()
        return [CommentOut.model_validate(item) for item in response.json()]

    async def create_comment(self, announcement_id: int, body: str) -> CommentOut:
        response = await self._client.post(
            "/api/v1/comments",
            json={"announcement_id": announcement_id, "body": body},
        )
        response.raise_for_status()
        return CommentOut.model_validate(response.json())

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["CommentsApi"]
