"""
Storage error taxonomy.

Startup errors (ConfigurationError, CredentialMismatchError,
StoragePermissionError) are fatal and must stop the process. Operation errors
carry the bucket and key involved so failures can be traced to a single
object.
"""


class StorageServiceError(Exception):
    """Base exception for storage errors."""


class ConfigurationError(StorageServiceError):
    """Raised when a required storage setting is missing."""


class CredentialMismatchError(StorageServiceError):
    """Raised when the credential in effect is not the configured one."""


class StoragePermissionError(StorageServiceError):
    """
    Raised when a startup permission probe fails.

    Attributes:
        capability: S3 action that could not be exercised (e.g. "PutObject").
        bucket: Bucket the probe ran against.
    """

    def __init__(self, capability: str, bucket: str, message: str) -> None:
        self.capability = capability
        self.bucket = bucket
        super().__init__(message)


class InvalidArgumentError(StorageServiceError, ValueError):
    """Raised for an empty object key or an out-of-range expiry."""


class StorageOperationError(StorageServiceError):
    """Raised when a storage operation fails for a given object."""

    def __init__(self, message: str, bucket: str | None = None, key: str | None = None) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(message)


class UploadError(StorageOperationError):
    """Raised when writing an object fails."""


class SigningError(StorageOperationError):
    """Raised when a presigned URL cannot be generated."""


class DeleteError(StorageOperationError):
    """Raised when deleting an object fails."""


class StorageNotFoundError(StorageOperationError):
    """Raised when a requested object does not exist."""
