"""
Media storage service.

Business-level operations over the shared StorageClient: uploading media
under opaque generated keys, issuing presigned download URLs (singly or in
batches for gallery views), reading object metadata, and mapping legacy S3
URLs back to object keys.

All boto3 calls are blocking and run in worker threads through async_wrap so
request handlers never block the event loop.

Key Features:
- Keys of the form {folder}/{uuid4}{ext}, never derived from user input
  beyond the extension
- STANDARD storage class with original-filename and upload-date metadata
- Presigned GET URLs with a public one-hour cache-control response header
- Batch presigning that skips bad items instead of failing the batch
"""

import asyncio
import logging
import os
import uuid

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from functools import wraps
from typing import Any, TypeVar
from urllib.parse import quote, unquote, urlsplit

from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings
from app.core.exceptions import (
    DeleteError,
    InvalidArgumentError,
    SigningError,
    StorageNotFoundError,
    StorageOperationError,
    StorageServiceError,
    UploadError,
)
from app.core.storage import StorageClient, get_storage_client, is_not_found
from app.models.media import PresignOutcome, StoredObjectReference, UploadResult
from app.utils.file_validator import classify, folder_for
from app.utils.logger import add_log_context


# Set up module-level logger for tracking S3 operations
logger = logging.getLogger(__name__)

# Type variable for generic async wrapper
T = TypeVar("T")

# Default validity of a single presigned URL (1 hour)
DEFAULT_PRESIGNED_URL_EXPIRATION = 3600

# Validity of URLs issued for list and gallery views (15 minutes)
BATCH_PRESIGNED_URL_EXPIRATION = 900

# SigV4 presigned URLs may not outlive seven days
MIN_PRESIGNED_URL_EXPIRATION = 1
MAX_PRESIGNED_URL_EXPIRATION = 7 * 24 * 3600

PRESIGNED_CACHE_CONTROL = "public, max-age=3600"

# Query markers of a SigV4 or SigV2 signed URL
SIGNATURE_MARKERS: tuple[str, ...] = ("X-Amz-Signature", "Signature=")

METADATA_ORIGINAL_FILENAME = "original-filename"
METADATA_UPLOAD_DATE = "upload-date"

# Printable ASCII kept readable in metadata; '%' is escaped so decoding is exact
_METADATA_SAFE_CHARS = " !\"#$&'()*+,-./:;<=>?@[\\]^_`{|}~"

# Singleton container for the service instance
_singleton_container: dict[str, "StorageService"] = {}


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to wrap synchronous boto3 operations for async execution.

    Uses asyncio.to_thread to run blocking boto3 operations in a separate
    thread pool, preventing event loop blocking during S3 operations.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return wrapper


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message", str(error))
    return str(error)


def encode_metadata_value(value: str) -> str:
    """Percent-encode characters S3 user metadata cannot carry (non-ASCII, '%')."""
    return quote(value, safe=_METADATA_SAFE_CHARS)


def decode_metadata_value(value: str) -> str:
    return unquote(value)


def generate_object_key(folder: str, filename: str) -> str:
    """
    Build a fresh object key: ``{folder}/{uuid4}{ext}``.

    The extension is taken from the original filename including its dot and
    may be empty. Nothing else from the filename reaches the key.
    """
    extension = os.path.splitext(filename or "")[1]
    return f"{folder.strip('/')}/{uuid.uuid4()}{extension}"


def get_key_from_url(url: str, bucket_name: str | None = None) -> str:
    """
    Extract the object key from an S3 object URL or presigned URL.

    Handles virtual-hosted URLs (https://bucket.s3.region.amazonaws.com/key)
    and path-style URLs (https://host/bucket/key). The query string is
    ignored and the key is percent-decoded.

    Returns:
        str: The object key, or "" if the URL does not look like an S3 URL.

    Example:
        >>> get_key_from_url("https://media.s3.eu-west-1.amazonaws.com/images/a%20b.png?X-Amz-Signature=x")
        "images/a b.png"
    """
    if not url or not url.strip():
        return ""

    url = url.strip()
    parts = urlsplit(url)
    if not parts.scheme:
        parts = urlsplit(f"https://{url}")

    host = parts.netloc.lower()
    path = parts.path
    if not path or path == "/":
        return ""

    if bucket_name:
        bucket_prefix = f"/{bucket_name}/"
        virtual_hosted = host.startswith(f"{bucket_name.lower()}.")
        if path.startswith(bucket_prefix) and not virtual_hosted:
            return unquote(path[len(bucket_prefix):])

    if ".amazonaws.com" in host:
        return unquote(path.lstrip("/"))

    if bucket_name and f"/{bucket_name}/" in path:
        return unquote(path.split(f"/{bucket_name}/", 1)[1])

    return ""


class StorageService:
    """
    Media operations on the configured bucket.

    Attributes:
        storage: Shared StorageClient (verified at startup)
        default_expiration: Validity of single presigned URLs in seconds

    Example:
        >>> service = StorageService(get_storage_client())
        >>> result = await service.upload_file(data, "team.jpg", "image/jpeg", "images")
        >>> url = await service.get_presigned_url(result.key)
    """

    def __init__(
        self,
        storage_client: StorageClient,
        default_expiration: int = DEFAULT_PRESIGNED_URL_EXPIRATION,
    ) -> None:
        self.storage = storage_client
        self.default_expiration = default_expiration

    @property
    def bucket_name(self) -> str:
        return self.storage.bucket_name

    # =========================================================================
    # Upload
    # =========================================================================

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        folder: str | None = None,
    ) -> UploadResult:
        """
        Upload media bytes under a newly generated key.

        Args:
            data: File content
            filename: Original filename (only its extension is used in the key)
            content_type: Declared content type, stored on the object
            folder: Key prefix; derived from the content type when omitted

        Returns:
            UploadResult: Generated key and the original filename

        Raises:
            UploadError: If the object could not be written. No partial object
                is considered stored.
        """
        target_folder = folder or folder_for(classify(content_type))
        key = generate_object_key(target_folder, filename)
        ctx_logger = add_log_context(logger, bucket=self.bucket_name, key=key)

        metadata = {
            METADATA_ORIGINAL_FILENAME: encode_metadata_value(filename or ""),
            METADATA_UPLOAD_DATE: datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }

        ctx_logger.info(
            "Uploading file",
            extra={"content_type": content_type, "size": len(data)},
        )

        try:
            await async_wrap(self.storage.upload_bytes)(key, data, content_type, metadata)
        except (ClientError, BotoCoreError) as e:
            ctx_logger.error("Failed to upload file: %s", _error_message(e))
            raise UploadError(
                f"failed to upload file to S3: {_error_message(e)}",
                bucket=self.bucket_name,
                key=key,
            ) from e

        ctx_logger.info("File uploaded successfully")
        return UploadResult(key=key, original_filename=filename)

    # =========================================================================
    # Presigned URLs
    # =========================================================================

    def _validate_expiration(self, expires_in: int) -> None:
        if not MIN_PRESIGNED_URL_EXPIRATION <= expires_in <= MAX_PRESIGNED_URL_EXPIRATION:
            raise InvalidArgumentError(
                f"Expiration must be between {MIN_PRESIGNED_URL_EXPIRATION} and "
                f"{MAX_PRESIGNED_URL_EXPIRATION} seconds, got {expires_in}"
            )

    def _sign(self, key: str, expires_in: int) -> str:
        return self.storage.generate_presigned_download_url(
            key, expires_in, cache_control=PRESIGNED_CACHE_CONTROL
        )

    async def get_presigned_url(
        self,
        key: str,
        expires_in: int | None = None,
        check_exists: bool = True,
    ) -> str:
        """
        Issue a presigned GET URL for a stored key.

        The optional existence probe only produces a debug log entry when the
        object is missing or unreadable; a URL is issued either way.

        Args:
            key: Object key
            expires_in: Validity in seconds, defaults to default_expiration
            check_exists: Run a HeadObject probe before signing

        Raises:
            InvalidArgumentError: For an empty key or an expiry outside
                1 second to 7 days.
            SigningError: If the URL cannot be produced.
        """
        if not key or not key.strip():
            raise InvalidArgumentError("S3 key is empty")

        expiration = self.default_expiration if expires_in is None else expires_in
        self._validate_expiration(expiration)

        ctx_logger = add_log_context(logger, bucket=self.bucket_name, key=key)

        if check_exists:
            try:
                await async_wrap(self.storage.head_object)(key)
            except (ClientError, BotoCoreError) as e:
                ctx_logger.debug("Object probe failed, signing anyway: %s", _error_message(e))

        try:
            url = await async_wrap(self._sign)(key, expiration)
        except (ClientError, BotoCoreError) as e:
            ctx_logger.error("Failed to generate presigned URL: %s", _error_message(e))
            raise SigningError(
                f"failed to generate presigned URL: {_error_message(e)}",
                bucket=self.bucket_name,
                key=key,
            ) from e

        ctx_logger.debug("Generated presigned URL", extra={"expires_in": expiration})
        return url

    def _presign_one(self, key: str | None, expires_in: int) -> PresignOutcome:
        if not key or not key.strip():
            return PresignOutcome(key=key or "", skipped_reason="empty key")

        try:
            url = self._sign(key, expires_in)
        except (ClientError, BotoCoreError) as e:
            return PresignOutcome(
                key=key, skipped_reason=f"signing failed: {_error_message(e)}"
            )

        if not any(marker in url for marker in SIGNATURE_MARKERS):
            return PresignOutcome(key=key, skipped_reason="generated URL carries no signature")

        return PresignOutcome(key=key, url=url)

    async def presign_batch(
        self,
        keys: Iterable[str | None],
        expires_in: int = BATCH_PRESIGNED_URL_EXPIRATION,
    ) -> list[PresignOutcome]:
        """
        Presign many keys for a list view, one outcome per input key.

        Never raises for an individual key: empty keys, signing failures and
        URLs without a signature are reported through skipped_reason. Outcomes
        are returned in input order.
        """
        self._validate_expiration(expires_in)
        key_list = list(keys)

        def _presign_all() -> list[PresignOutcome]:
            return [self._presign_one(key, expires_in) for key in key_list]

        outcomes = await async_wrap(_presign_all)()

        skipped = [outcome for outcome in outcomes if not outcome.ok]
        for outcome in skipped:
            logger.warning(
                "Skipping presigned URL for %r: %s",
                outcome.key,
                outcome.skipped_reason,
                extra={"bucket": self.bucket_name},
            )

        logger.debug(
            "Presigned batch",
            extra={"requested": len(key_list), "signed": len(outcomes) - len(skipped)},
        )
        return outcomes

    async def convert_to_presigned_urls(
        self,
        references: Sequence[StoredObjectReference],
        expires_in: int = BATCH_PRESIGNED_URL_EXPIRATION,
    ) -> list[StoredObjectReference]:
        """
        Presign stored-object references for a gallery view.

        Returns copies of the references that could be signed, with url set,
        in input order. References that were skipped are absent.
        """
        outcomes = await self.presign_batch([ref.s3_key for ref in references], expires_in)
        return [
            ref.model_copy(update={"url": outcome.url})
            for ref, outcome in zip(references, outcomes, strict=True)
            if outcome.ok
        ]

    # =========================================================================
    # Object operations
    # =========================================================================

    async def delete_file(self, key: str) -> None:
        """
        Delete a stored object.

        Raises:
            InvalidArgumentError: For an empty key.
            DeleteError: If S3 rejects the deletion.
        """
        if not key or not key.strip():
            raise InvalidArgumentError("S3 key is empty")

        ctx_logger = add_log_context(logger, bucket=self.bucket_name, key=key)
        try:
            await async_wrap(self.storage.delete_object)(key)
        except (ClientError, BotoCoreError) as e:
            ctx_logger.error("Failed to delete file: %s", _error_message(e))
            raise DeleteError(
                f"failed to delete file from S3: {_error_message(e)}",
                bucket=self.bucket_name,
                key=key,
            ) from e

        ctx_logger.info("File deleted")

    async def file_exists(self, key: str) -> bool:
        """
        Check whether an object exists.

        Raises:
            StorageOperationError: For failures other than not-found.
        """
        if not key:
            return False
        try:
            return await async_wrap(self.storage.file_exists)(key)
        except (ClientError, BotoCoreError) as e:
            raise StorageOperationError(
                f"failed to check object existence: {_error_message(e)}",
                bucket=self.bucket_name,
                key=key,
            ) from e

    async def get_object_metadata(self, key: str) -> dict[str, str]:
        """
        Return the user metadata stored with an object.

        Raises:
            StorageNotFoundError: If the object does not exist.
            StorageOperationError: For any other failure.
        """
        if not key or not key.strip():
            raise InvalidArgumentError("S3 key is empty")

        try:
            response = await async_wrap(self.storage.head_object)(key)
        except ClientError as e:
            if is_not_found(e):
                raise StorageNotFoundError(
                    f"Object not found: {key}", bucket=self.bucket_name, key=key
                ) from e
            raise StorageOperationError(
                f"failed to get object metadata: {_error_message(e)}",
                bucket=self.bucket_name,
                key=key,
            ) from e
        except BotoCoreError as e:
            raise StorageOperationError(
                f"failed to get object metadata: {e}", bucket=self.bucket_name, key=key
            ) from e

        return dict(response.get("Metadata", {}))

    async def get_original_filename(self, key: str) -> str:
        """Return the original filename recorded at upload time, or "" if unavailable."""
        try:
            metadata = await self.get_object_metadata(key)
        except StorageServiceError as e:
            logger.debug("Original filename unavailable for %s: %s", key, e)
            return ""
        return decode_metadata_value(metadata.get(METADATA_ORIGINAL_FILENAME, ""))

    def get_key_from_url(self, url: str) -> str:
        """Extract an object key from a URL pointing into this bucket."""
        return get_key_from_url(url, self.bucket_name)


def get_storage_service() -> StorageService:
    """
    Get the singleton StorageService bound to the shared StorageClient.

    May initialise the client on first use, which performs blocking S3 calls;
    call it from synchronous dependencies or worker threads only.
    """
    storage_client = get_storage_client()
    service = _singleton_container.get("instance")
    if service is None or service.storage is not storage_client:
        service = StorageService(
            storage_client,
            default_expiration=get_settings().presigned_url_expiration_seconds,
        )
        _singleton_container["instance"] = service
    return service
