"""
Branch Media API Endpoints.

Upload, list, update and delete media attached to branches. Files are stored
privately in S3 under generated keys; every response carries a freshly
presigned download URL instead of a permanent link.

Endpoints:
- POST / - Upload a file for a branch (multipart form)
- GET / - List all media
- GET /branch/{branch_id} - List media of one branch or child branch
- GET /{media_id} - Retrieve one media record
- PUT /{media_id} - Update name and category
- GET /{media_id}/url - Issue a new presigned URL
- DELETE /{media_id} - Delete the stored object and the record

All endpoints require a Bearer token.
"""

import logging

from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from app.core.auth import get_current_user, user_identifier
from app.core.exceptions import InvalidArgumentError, SigningError, UploadError
from app.models.branch_media import (
    BranchMediaListResponse,
    BranchMediaResponse,
    BranchMediaUpdate,
)
from app.services.branch_media_service import BranchMediaService, get_branch_media_service
from app.services.storage_service import (
    MAX_PRESIGNED_URL_EXPIRATION,
    MIN_PRESIGNED_URL_EXPIRATION,
)
from app.utils.file_validator import (
    FileTooLargeError,
    UnsupportedFileTypeError,
    check_size,
    raise_file_too_large_error,
    raise_unsupported_type_error,
    validate_file_type,
)


# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class MediaUrlResponse(BaseModel):
    """Freshly signed download URL for a media record."""

    media_id: str = Field(..., description="Media record ID")
    url: str = Field(..., description="Presigned GET URL")
    expires_in: int | None = Field(None, description="Requested validity in seconds")


class DeleteResponse(BaseModel):
    """Response model for a successful media deletion."""

    success: bool = Field(..., description="Deletion success status")
    message: str = Field(..., description="Confirmation message")
    media_id: str = Field(..., description="ID of the deleted record")


# =============================================================================
# Router Configuration
# =============================================================================

router = APIRouter(tags=["branch-media"], dependencies=[Depends(get_current_user)])


def _not_found(media_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Branch media with ID '{media_id}' not found",
    )


# =============================================================================
# API Endpoints
# =============================================================================


@router.post(
    "",
    response_model=BranchMediaResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload branch media",
    responses={
        413: {"description": "File exceeds the size limit of its type"},
        415: {"description": "Content type not allowed"},
        502: {"description": "Object storage rejected the upload"},
    },
)
async def upload_branch_media(
    file: UploadFile = File(..., description="Media file"),
    branch_id: int = Form(..., ge=1),
    is_child_branch: bool = Form(False),
    category: str = Form(""),
    name: str = Form(""),
    user: dict[str, Any] = Depends(get_current_user),
    service: BranchMediaService = Depends(get_branch_media_service),
) -> BranchMediaResponse:
    """Validate and upload a file, then store it as branch media."""
    # Reject by declared type and size before the body is read into memory
    try:
        file_category = validate_file_type(file.content_type)
        if file.size is not None:
            check_size(file.size, file_category)
    except UnsupportedFileTypeError as e:
        raise_unsupported_type_error(e)
    except FileTooLargeError as e:
        raise_file_too_large_error(e)

    data = await file.read()

    try:
        return await service.upload_media(
            branch_id=branch_id,
            is_child_branch=is_child_branch,
            data=data,
            filename=file.filename or "",
            content_type=file.content_type or "",
            name=name,
            category=category,
            user_id=user_identifier(user),
        )
    except UnsupportedFileTypeError as e:
        raise_unsupported_type_error(e)
    except FileTooLargeError as e:
        raise_file_too_large_error(e)
    except UploadError as e:
        logger.error("Upload failed for branch %s: %s", branch_id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to upload file to storage",
        ) from e
    except PyMongoError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store media record",
        ) from e


@router.get("", response_model=BranchMediaListResponse, summary="List all branch media")
async def list_branch_media(
    service: BranchMediaService = Depends(get_branch_media_service),
) -> BranchMediaListResponse:
    items = await service.list_media()
    return BranchMediaListResponse(items=items, total=len(items))


@router.get(
    "/branch/{branch_id}",
    response_model=BranchMediaListResponse,
    summary="List media of a branch",
)
async def list_media_for_branch(
    branch_id: int,
    is_child_branch: bool = Query(False, description="branch_id refers to a child branch"),
    service: BranchMediaService = Depends(get_branch_media_service),
) -> BranchMediaListResponse:
    items = await service.list_branch_media(branch_id, is_child_branch)
    return BranchMediaListResponse(items=items, total=len(items))


@router.get("/{media_id}", response_model=BranchMediaResponse, summary="Get branch media")
async def get_branch_media(
    media_id: str,
    service: BranchMediaService = Depends(get_branch_media_service),
) -> BranchMediaResponse:
    media = await service.get_media(media_id)
    if media is None:
        raise _not_found(media_id)
    return media


@router.put("/{media_id}", response_model=BranchMediaResponse, summary="Update branch media")
async def update_branch_media(
    media_id: str,
    update: BranchMediaUpdate,
    user: dict[str, Any] = Depends(get_current_user),
    service: BranchMediaService = Depends(get_branch_media_service),
) -> BranchMediaResponse:
    media = await service.update_media(media_id, update, user_identifier(user))
    if media is None:
        raise _not_found(media_id)
    return media


@router.get(
    "/{media_id}/url",
    response_model=MediaUrlResponse,
    summary="Issue a presigned download URL",
)
async def get_branch_media_url(
    media_id: str,
    expires_in: int | None = Query(
        None,
        ge=MIN_PRESIGNED_URL_EXPIRATION,
        le=MAX_PRESIGNED_URL_EXPIRATION,
        description="URL validity in seconds",
    ),
    service: BranchMediaService = Depends(get_branch_media_service),
) -> MediaUrlResponse:
    try:
        url = await service.get_media_url(media_id, expires_in)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except SigningError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate download URL",
        ) from e

    if url is None:
        raise _not_found(media_id)
    return MediaUrlResponse(media_id=media_id, url=url, expires_in=expires_in)


@router.delete("/{media_id}", response_model=DeleteResponse, summary="Delete branch media")
async def delete_branch_media(
    media_id: str,
    service: BranchMediaService = Depends(get_branch_media_service),
) -> DeleteResponse:
    if not await service.delete_media(media_id):
        raise _not_found(media_id)
    return DeleteResponse(
        success=True,
        message="Branch media deleted successfully",
        media_id=media_id,
    )
