"""
Branch media Pydantic models.

A branch media record attaches an uploaded file (photo, video, audio clip or
document) to a branch or child branch. The record stores only the opaque S3
key; every response carries a freshly signed URL in ``url``.

Older records were written with a long-lived public ``file_url`` instead of a
key. That field is kept for reading those records but is never serialised.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.utils.file_validator import FileCategory, classify


class BranchMedia(BaseModel):
    """
    Stored branch media document.

    Attributes:
        id: MongoDB ObjectId as string (aliased from _id)
        branch_id: Branch (or child branch) the media belongs to
        is_child_branch: True when branch_id refers to a child branch
        s3_key: Object key in the media bucket
        file_url: Legacy public URL, internal only
        file_type: Media category derived from the upload content type
        name: Display name
        category: Free-form grouping such as "Branch Photos"
        original_filename: Filename supplied by the uploader
        content_type: Declared content type of the upload
        file_size: Size in bytes
    """

    id: str | None = Field(default=None, alias="_id", description="MongoDB ObjectId as string")

    branch_id: int = Field(..., ge=1, description="Owning branch ID")

    is_child_branch: bool = Field(default=False, description="Owner is a child branch")

    s3_key: str | None = Field(default=None, max_length=1024, description="Object key in S3")

    file_url: str | None = Field(
        default=None, exclude=True, description="Legacy public URL (never returned)"
    )

    file_type: FileCategory = Field(default=FileCategory.DOCUMENT, description="Media category")

    name: str = Field(default="", max_length=255, description="Display name")

    category: str = Field(default="", max_length=100, description="Media grouping")

    original_filename: str = Field(default="", max_length=255)

    content_type: str = Field(default="", max_length=255)

    file_size: int = Field(default=0, ge=0, description="File size in bytes")

    created_on: datetime = Field(default_factory=lambda: datetime.now(UTC))

    updated_on: datetime = Field(default_factory=lambda: datetime.now(UTC))

    created_by: str | None = Field(default=None)

    updated_by: str | None = Field(default=None)

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @model_validator(mode="before")
    @classmethod
    def default_file_type(cls, data: Any) -> Any:
        """Documents stored without a category take it from their content type."""
        if isinstance(data, dict) and not data.get("file_type"):
            data = {**data, "file_type": classify(data.get("content_type"))}
        return data

    @field_validator("file_type", mode="before")
    @classmethod
    def validate_file_type(cls, v: object) -> object:
        """Records written with the legacy "file" category are documents."""
        if isinstance(v, str) and v.lower() == "file":
            return FileCategory.DOCUMENT
        return v

    @field_validator("name", "category")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class BranchMediaUpdate(BaseModel):
    """Mutable fields of a branch media record (request body)."""

    name: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, max_length=100)

    model_config = ConfigDict(
        json_schema_extra={"example": {"name": "Front entrance", "category": "Branch Photos"}}
    )


class BranchMediaResponse(BaseModel):
    """Branch media as returned by the API, with a freshly signed URL."""

    id: str | None = Field(None, description="Record ID")
    branch_id: int
    is_child_branch: bool
    file_type: str
    name: str
    category: str
    original_filename: str
    content_type: str
    file_size: int
    s3_key: str | None = Field(None, description="Object key (URLs are derived from it)")
    url: str | None = Field(
        None, description="Presigned download URL, absent if signing failed"
    )
    created_on: datetime
    updated_on: datetime
    created_by: str | None = None
    updated_by: str | None = None

    @classmethod
    def from_media(cls, media: BranchMedia, url: str | None = None) -> "BranchMediaResponse":
        """Build a response from a stored record and an optional signed URL."""
        return cls(
            id=media.id,
            branch_id=media.branch_id,
            is_child_branch=media.is_child_branch,
            file_type=FileCategory(media.file_type).value,
            name=media.name,
            category=media.category,
            original_filename=media.original_filename,
            content_type=media.content_type,
            file_size=media.file_size,
            s3_key=media.s3_key,
            url=url,
            created_on=media.created_on,
            updated_on=media.updated_on,
            created_by=media.created_by,
            updated_by=media.updated_by,
        )


class BranchMediaListResponse(BaseModel):
    """List of branch media records."""

    items: list[BranchMediaResponse] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
