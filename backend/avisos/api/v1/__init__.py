"""API v1 package."""
from fastapi import APIRouter

from avisos.api.v1 import announcements, auth, comments, metrics, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(users.router, tags=["users"])
api_router.include_router(announcements.router, tags=["announcements"])
api_router.include_router(comments.router, tags=["comments"])
api_router.include_router(metrics.router, tags=["metrics"])

__all__ = ["api_router"]
