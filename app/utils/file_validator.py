"""
File Validation Utilities Module

This module classifies uploaded media by declared content type and enforces the
upload rules for the media store:
- Content-type allow-list (images, videos, audio, PDF and Office documents)
- Classification into image, video, audio or document categories
- Category to storage folder mapping ("images", "videos", "audio", "files")
- Per-category maximum file size (image 10 MB, video 500 MB, audio 50 MB,
  documents 100 MB)

Every check here is pure: no network or storage access, so handlers can reject
a request before any bytes are sent to S3.
"""

from enum import Enum
from typing import NoReturn

from fastapi import HTTPException


# =============================================================================
# CONSTANTS - Size Limits
# =============================================================================

# Bytes in a kilobyte (for size conversions and comparisons)
BYTES_PER_KB: int = 1024

BYTES_PER_MB: int = BYTES_PER_KB * BYTES_PER_KB


class FileCategory(str, Enum):
    """Broad media category derived from a content type."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


# Maximum upload size per category
MAX_FILE_SIZE_BY_CATEGORY: dict[FileCategory, int] = {
    FileCategory.IMAGE: 10 * BYTES_PER_MB,
    FileCategory.VIDEO: 500 * BYTES_PER_MB,
    FileCategory.AUDIO: 50 * BYTES_PER_MB,
    FileCategory.DOCUMENT: 100 * BYTES_PER_MB,
}

# Applied to anything that does not resolve to a known category
DEFAULT_MAX_FILE_SIZE_BYTES: int = 100 * BYTES_PER_MB


# =============================================================================
# CONSTANTS - Storage Folders
# =============================================================================

FOLDER_BY_CATEGORY: dict[FileCategory, str] = {
    FileCategory.IMAGE: "images",
    FileCategory.VIDEO: "videos",
    FileCategory.AUDIO: "audio",
    FileCategory.DOCUMENT: "files",
}

DEFAULT_FOLDER: str = "files"


# =============================================================================
# CONSTANTS - Allowed Content Types
# =============================================================================

ALLOWED_CONTENT_TYPES_BY_CATEGORY: dict[FileCategory, list[str]] = {
    FileCategory.IMAGE: [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/svg+xml",
    ],
    FileCategory.VIDEO: [
        "video/mp4",
        "video/mpeg",
        "video/quicktime",
        "video/x-msvideo",
        "video/x-ms-wmv",
        "video/webm",
        "video/ogg",
        "video/x-matroska",
    ],
    FileCategory.AUDIO: [
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/ogg",
        "audio/webm",
        "audio/aac",
        "audio/x-m4a",
        "audio/flac",
        "audio/x-wav",
    ],
    FileCategory.DOCUMENT: [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ],
}

# Flat set of all allowed content types for quick membership testing
ALLOWED_CONTENT_TYPES: set[str] = {
    content_type
    for content_types in ALLOWED_CONTENT_TYPES_BY_CATEGORY.values()
    for content_type in content_types
}


# =============================================================================
# EXCEPTIONS
# =============================================================================


class FileValidationError(ValueError):
    """Base exception for upload validation failures."""


class UnsupportedFileTypeError(FileValidationError):
    """Raised when a content type is not on the allow-list."""

    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(f"file type {content_type} is not allowed")


class FileTooLargeError(FileValidationError):
    """Raised when a file exceeds the size limit of its category."""

    def __init__(self, file_size: int, max_size: int) -> None:
        self.file_size = file_size
        self.max_size = max_size
        super().__init__(
            f"file size exceeds maximum allowed size of {max_size // BYTES_PER_MB} MB"
        )


# =============================================================================
# CLASSIFICATION
# =============================================================================


def normalize_content_type(content_type: str | None) -> str:
    """
    Strip parameters and whitespace from a content type and lower-case it.

    Example:
        >>> normalize_content_type("Image/PNG; charset=binary")
        "image/png"
    """
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def classify(content_type: str | None) -> FileCategory:
    """
    Map a content type to a media category.

    image/*, video/* and audio/* map to their own categories; everything else,
    including empty or malformed values, is a document.

    Example:
        >>> classify("video/mp4; codecs=avc1")
        FileCategory.VIDEO
        >>> classify("application/zip")
        FileCategory.DOCUMENT
    """
    normalized = normalize_content_type(content_type)
    if normalized.startswith("image/"):
        return FileCategory.IMAGE
    if normalized.startswith("video/"):
        return FileCategory.VIDEO
    if normalized.startswith("audio/"):
        return FileCategory.AUDIO
    return FileCategory.DOCUMENT


def folder_for(category: FileCategory | str | None) -> str:
    """Return the storage folder for a category, "files" when unknown."""
    try:
        return FOLDER_BY_CATEGORY[FileCategory(category)]
    except ValueError:
        return DEFAULT_FOLDER


def max_size_for(category: FileCategory | str | None) -> int:
    """Return the maximum upload size in bytes for a category."""
    try:
        return MAX_FILE_SIZE_BY_CATEGORY[FileCategory(category)]
    except ValueError:
        return DEFAULT_MAX_FILE_SIZE_BYTES


# =============================================================================
# VALIDATION
# =============================================================================


def is_allowed(content_type: str | None) -> bool:
    """Check exact membership of the normalized content type in the allow-list."""
    return normalize_content_type(content_type) in ALLOWED_CONTENT_TYPES


def validate_file_type(content_type: str | None) -> FileCategory:
    """
    Validate a content type and return its category.

    Raises:
        UnsupportedFileTypeError: If the content type is not allowed.
    """
    if not is_allowed(content_type):
        raise UnsupportedFileTypeError(normalize_content_type(content_type) or "unknown")
    return classify(content_type)


def check_size(size: int, category: FileCategory | str | None) -> None:
    """
    Enforce the size ceiling of a category. A file exactly at the limit passes.

    Raises:
        FileTooLargeError: If size is strictly greater than the limit.
    """
    limit = max_size_for(category)
    if size > limit:
        raise FileTooLargeError(size, limit)


def validate_file_size(size: int, category: FileCategory | str | None) -> bool:
    """
    Boolean form of check_size.

    Returns:
        True if the size is within the category limit, False otherwise
    """
    try:
        check_size(size, category)
    except FileTooLargeError:
        return False
    return True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_allowed_content_types_flat() -> list[str]:
    """Get a sorted list of all allowed content types."""
    return sorted(ALLOWED_CONTENT_TYPES)


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable string.

    Example:
        >>> format_file_size(1536)
        "1.50 KB"
        >>> format_file_size(1048576)
        "1.00 MB"
    """
    if size_bytes < 0:
        return "Invalid size"

    bytes_per_gb = BYTES_PER_MB * BYTES_PER_KB

    if size_bytes < BYTES_PER_KB:
        return f"{size_bytes} B"
    if size_bytes < BYTES_PER_MB:
        return f"{size_bytes / BYTES_PER_KB:.2f} KB"
    if size_bytes < bytes_per_gb:
        return f"{size_bytes / BYTES_PER_MB:.2f} MB"
    return f"{size_bytes / bytes_per_gb:.2f} GB"


# =============================================================================
# HTTP EXCEPTION HELPERS
# =============================================================================


def raise_file_too_large_error(error: FileTooLargeError) -> NoReturn:
    """
    Raise an HTTPException for files exceeding their category limit.

    Uses HTTP 413 Payload Too Large status code as per REST conventions.
    """
    raise HTTPException(
        status_code=413,
        detail=f"{error} (received {format_file_size(error.file_size)})",
    ) from error


def raise_unsupported_type_error(error: UnsupportedFileTypeError) -> NoReturn:
    """
    Raise an HTTPException for content types outside the allow-list.

    Uses HTTP 415 Unsupported Media Type status code as per REST conventions.
    """
    raise HTTPException(
        status_code=415,
        detail=(
            f"{error}. Allowed types: images, videos, audio, PDF and Office documents"
        ),
    ) from error
