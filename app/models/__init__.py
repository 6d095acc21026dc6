"""
Models Package for the event reporting backend.

Models Overview:
    - BranchMedia: Media record attached to a branch or child branch
    - StoredObjectReference: Stored-object reference held by owners, signed on read
    - UploadResult / PresignOutcome: Storage operation results
"""

from app.models.branch_media import (
    BranchMedia,
    BranchMediaListResponse,
    BranchMediaResponse,
    BranchMediaUpdate,
)
from app.models.media import PresignOutcome, StoredObjectReference, UploadResult


__version__ = "1.0.0"

__all__ = [
    "BranchMedia",
    "BranchMediaListResponse",
    "BranchMediaResponse",
    "BranchMediaUpdate",
    "PresignOutcome",
    "StoredObjectReference",
    "UploadResult",
    "__version__",
]
