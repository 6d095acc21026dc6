"""
Storage-level media models.

These describe objects in the bucket independently of which record owns them:
the durable reference persisted by owners, the result of an upload, and the
per-item outcome of a batch presign.
"""

from pydantic import BaseModel, ConfigDict, Field

from app.utils.file_validator import FileCategory


class StoredObjectReference(BaseModel):
    """
    Durable pointer from an owning record to an object in the bucket.

    s3_key is generated once at upload time and never changes; url is only
    filled in on read, for the lifetime of one presigned URL. Records written
    before keys existed may carry an empty s3_key.
    """

    s3_key: str = Field(default="", max_length=1024, description="Opaque object key")
    original_filename: str = Field(default="", description="Client-supplied filename")
    file_type: FileCategory = Field(..., description="Media category of the object")
    owner_id: str = Field(..., description="Identifier of the owning record")
    owner_type: str = Field(..., description="Kind of owning record (e.g. 'branch')")
    url: str | None = Field(default=None, description="Presigned GET URL, set on read")

    model_config = ConfigDict(use_enum_values=True)


class UploadResult(BaseModel):
    """Key and original filename of a freshly uploaded object."""

    key: str = Field(..., description="Generated object key ({folder}/{uuid}{ext})")
    original_filename: str = Field(..., description="Filename as supplied by the client")


class PresignOutcome(BaseModel):
    """
    Result of presigning one key in a batch.

    Exactly one of url and skipped_reason is set.
    """

    key: str = Field(..., description="Object key the outcome refers to")
    url: str | None = Field(default=None, description="Presigned GET URL")
    skipped_reason: str | None = Field(
        default=None, description="Why no URL was produced for this key"
    )

    @property
    def ok(self) -> bool:
        return self.url is not None
