"""
Utilities Package for the event reporting backend.

Modules:
--------
file_validator:
    Content-type allow-list, file categories, per-category size limits and
    storage folders, plus HTTP error helpers for rejected uploads.

logger:
    Structured logging configuration including:
    - JSONFormatter for structured log output
    - StandardFormatter for human-readable development logs
    - setup_logging for application-wide configuration
    - add_log_context for attaching request or object context to log records
"""

from app.utils.file_validator import (
    FileCategory,
    classify,
    folder_for,
    max_size_for,
    validate_file_size,
    validate_file_type,
)
from app.utils.logger import add_log_context, setup_logging


__all__ = [
    "FileCategory",
    "add_log_context",
    "classify",
    "folder_for",
    "max_size_for",
    "setup_logging",
    "validate_file_size",
    "validate_file_type",
]
