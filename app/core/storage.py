"""
S3 Storage Client

This module owns the process-wide boto3 S3 client used for all media storage.
The client is created once during application startup from the static
credentials in Settings, its effective identity is checked against the
configured key, and the target bucket is probed for every permission the
application relies on before any request is served.

Key Features:
- Explicit static credentials (no session token, no ambient role fallback)
- Startup permission verification (head, list, presign, write, delete)
- Thin wrappers over the S3 calls used by the storage service
- Singleton container with lock-guarded lazy initialisation that retries
  after a failed attempt
"""

import io
import logging
import threading
import time

from typing import Any

from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, get_settings
from app.core.credentials import (
    StaticCredentials,
    build_static_session,
    detect_ambient_temporary_credentials,
    mask_key,
    resolve_storage_credentials,
    verify_effective_credentials,
)
from app.core.exceptions import StoragePermissionError


logger = logging.getLogger(__name__)

# Storage class used for all uploads; media must be immediately readable
DEFAULT_STORAGE_CLASS = "STANDARD"

# Validity of the presigned URL minted during the permission probe
PROBE_PRESIGN_EXPIRATION_SECONDS = 60

PROBE_OBJECT_BODY = b"test"

# Error codes S3 returns for a missing object on HEAD/GET
NOT_FOUND_ERROR_CODES = {"404", "NoSuchKey", "NotFound"}

# Singleton container for storage client instance
_singleton_container: dict[str, "StorageClient"] = {}
_singleton_lock = threading.Lock()


def _error_summary(error: Exception) -> str:
    """Render a botocore error as 'Code: message' when a response is attached."""
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        return f"{err.get('Code', 'Unknown')}: {err.get('Message', str(error))}"
    return str(error)


def is_not_found(error: ClientError) -> bool:
    """Check whether a ClientError means the object does not exist."""
    return error.response.get("Error", {}).get("Code", "") in NOT_FOUND_ERROR_CODES


class StorageClient:
    """
    S3 client bound to the configured bucket with verified static credentials.

    Attributes:
        credentials: Resolved static credentials, bucket and region
        session: boto3 session built from the static key pair
        s3_client: boto3 S3 client created from the session
        bucket_name: Target bucket for all operations
        region: Bucket region

    Example usage:
        ```python
        from app.core.storage import init_storage

        storage = init_storage(settings)
        url = storage.generate_presigned_download_url("images/abc.png", 900)
        ```
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """
        Resolve credentials and build the S3 client.

        Args:
            settings: Optional Settings instance; defaults to get_settings().

        Raises:
            ConfigurationError: If a required storage setting is missing.
            CredentialMismatchError: If the SDK resolves a different access key.
        """
        self.settings = settings or get_settings()
        self.credentials: StaticCredentials = resolve_storage_credentials(self.settings)
        self.bucket_name = self.credentials.bucket_name
        self.region = self.credentials.region

        detect_ambient_temporary_credentials()

        self.session = build_static_session(self.credentials)
        verify_effective_credentials(self.session, self.credentials.access_key_id)

        addressing_style = "path" if self.settings.s3_endpoint_url else "virtual"
        client_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": addressing_style},
            retries={"max_attempts": 3, "mode": "standard"},
        )

        self.s3_client = self.session.client(
            "s3",
            endpoint_url=self.settings.s3_endpoint_url,
            config=client_config,
        )

        logger.info(
            "S3 storage client initialized",
            extra={
                "bucket": self.bucket_name,
                "region": self.region,
                "access_key": mask_key(self.credentials.access_key_id),
                "endpoint": self.settings.s3_endpoint_url or "AWS S3 (default)",
            },
        )

    # =========================================================================
    # Startup verification
    # =========================================================================

    def verify_connection(self) -> None:
        """
        Probe the bucket for every capability the application depends on.

        Runs, in order: HeadBucket, ListObjectsV2 (one key), a presigned
        GetObject for a key that need not exist, then PutObject of a small test
        object followed by its deletion. Failure to delete the test object is
        only logged; read and write access have already been proven.

        Raises:
            StoragePermissionError: Naming the capability that failed.
        """
        bucket = self.bucket_name
        logger.info("Verifying S3 bucket access: %s", bucket)

        try:
            self.s3_client.head_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError) as e:
            raise StoragePermissionError(
                "HeadBucket",
                bucket,
                f"cannot access bucket {bucket}: {_error_summary(e)}. "
                "Check bucket name, region, and IAM permissions (s3:ListBucket)",
            ) from e
        logger.info("Bucket exists and is accessible")

        try:
            self.s3_client.list_objects_v2(Bucket=bucket, MaxKeys=1)
        except (ClientError, BotoCoreError) as e:
            raise StoragePermissionError(
                "ListBucket",
                bucket,
                f"cannot list objects in bucket {bucket}: {_error_summary(e)}. "
                "Check IAM permissions (s3:ListBucket)",
            ) from e
        logger.info("List objects permission verified")

        now = int(time.time())
        probe_key = f"test-permission-check-{now}"
        try:
            self.s3_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": probe_key},
                ExpiresIn=PROBE_PRESIGN_EXPIRATION_SECONDS,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoragePermissionError(
                "GetObject",
                bucket,
                f"cannot generate presigned URLs: {_error_summary(e)}. "
                "Check IAM permissions (s3:GetObject)",
            ) from e
        logger.info("Presigned URL generation permission verified")

        upload_key = f"test-upload-permission-{now}.txt"
        try:
            self.s3_client.put_object(
                Bucket=bucket,
                Key=upload_key,
                Body=PROBE_OBJECT_BODY,
                ContentType="text/plain",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoragePermissionError(
                "PutObject",
                bucket,
                f"cannot upload to bucket {bucket}: {_error_summary(e)}. "
                "Check IAM permissions (s3:PutObject)",
            ) from e
        logger.info("Upload permission verified")

        try:
            self.s3_client.delete_object(Bucket=bucket, Key=upload_key)
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                "Failed to delete test file %s: %s", upload_key, _error_summary(e)
            )
        else:
            logger.info("Delete permission verified (test file cleaned up)")

    # =========================================================================
    # Object operations
    # =========================================================================

    def upload_bytes(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
        storage_class: str = DEFAULT_STORAGE_CLASS,
    ) -> None:
        """
        Upload raw bytes through the managed transfer (multipart when large).

        No ACL is set: the bucket is private and all reads go through
        presigned URLs.
        """
        extra_args: dict[str, Any] = {
            "ContentType": content_type,
            "StorageClass": storage_class,
        }
        if metadata:
            extra_args["Metadata"] = metadata

        self.s3_client.upload_fileobj(
            io.BytesIO(data),
            self.bucket_name,
            key,
            ExtraArgs=extra_args,
        )
        logger.debug("Uploaded object", extra={"key": key, "size": len(data)})

    def generate_presigned_download_url(
        self,
        key: str,
        expires_in: int,
        cache_control: str | None = None,
    ) -> str:
        """Generate a presigned GET URL for an object key."""
        params: dict[str, Any] = {"Bucket": self.bucket_name, "Key": key}
        if cache_control:
            params["ResponseCacheControl"] = cache_control

        return self.s3_client.generate_presigned_url(
            ClientMethod="get_object",
            Params=params,
            ExpiresIn=expires_in,
        )

    def head_object(self, key: str) -> dict[str, Any]:
        """Return the HeadObject response for a key."""
        return self.s3_client.head_object(Bucket=self.bucket_name, Key=key)

    def file_exists(self, key: str) -> bool:
        """
        Check if an object exists using a HEAD request.

        Returns:
            bool: False on a not-found response; other errors are re-raised.
        """
        try:
            self.head_object(key)
        except ClientError as e:
            if is_not_found(e):
                return False
            raise
        return True

    def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error in S3."""
        self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)


# =============================================================================
# Singleton management
# =============================================================================


def init_storage(settings: Settings | None = None, verify: bool | None = None) -> StorageClient:
    """
    Create, verify and register the process-wide StorageClient.

    The client is only registered after every check passes, so a failed
    initialisation leaves nothing behind and the next attempt starts over.

    Args:
        settings: Optional Settings instance; defaults to get_settings().
        verify: Run the bucket permission probes. Defaults to
            settings.storage_verify_on_startup.

    Returns:
        StorageClient: The registered client.
    """
    with _singleton_lock:
        existing = _singleton_container.get("instance")
        if existing is not None:
            return existing

        settings = settings or get_settings()
        client = StorageClient(settings)

        should_verify = settings.storage_verify_on_startup if verify is None else verify
        if should_verify:
            client.verify_connection()
            logger.info(
                "S3 bucket verification passed - bucket is accessible and has correct permissions"
            )

        _singleton_container["instance"] = client
        return client


def get_storage_client() -> StorageClient:
    """
    Get the singleton StorageClient, initialising it on first use.

    Normally the client is created during application startup; the lazy path
    covers scripts and workers that skip the lifespan.
    """
    client = _singleton_container.get("instance")
    if client is None:
        client = init_storage()
    return client


def close_storage() -> None:
    """Drop the registered client so the next call re-initialises."""
    with _singleton_lock:
        client = _singleton_container.pop("instance", None)
    if client is not None:
        client.s3_client.close()
        logger.info("S3 storage client released")
