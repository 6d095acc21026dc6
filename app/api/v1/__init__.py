"""
API v1 Router Aggregator.

Combines the v1 endpoint routers into a single APIRouter that the application
mounts under /api/v1.

Router Structure:
    - /branch-media: Branch media upload, listing, presigned URLs and deletion
"""

from fastapi import APIRouter

from app.api.v1.branch_media import router as branch_media_router


# Create the main API v1 router
api_router = APIRouter()

api_router.include_router(
    branch_media_router,
    prefix="/branch-media",
    tags=["branch-media"],
)


__all__ = ["api_router"]
