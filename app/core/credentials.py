"""
Static S3 credential resolution.

Storage access must run on the long-lived access key pair supplied through
configuration. boto3's default credential chain would silently prefer a
session token, an assumed role or a web identity token found in the process
environment, so the session is built from the explicit pair and the credential
actually in effect is re-resolved and compared with the configured one before
any client is created.

The process environment is inspected but never modified.
"""

import logging
import os

from dataclasses import dataclass

import boto3

from botocore.exceptions import BotoCoreError

from app.config import Settings
from app.core.exceptions import ConfigurationError, CredentialMismatchError


logger = logging.getLogger(__name__)

# Variables that make the default chain pick up temporary credentials
TEMPORARY_CREDENTIAL_VARS: tuple[str, ...] = (
    "AWS_SESSION_TOKEN",
    "AWS_SECURITY_TOKEN",
    "AWS_ROLE_ARN",
    "AWS_WEB_IDENTITY_TOKEN_FILE",
)

# Long-lived IAM user keys start with AKIA, STS-issued ones with ASIA
PERMANENT_KEY_PREFIX = "AKIA"

MASK_VISIBLE_CHARS = 8


@dataclass(frozen=True)
class StaticCredentials:
    """Validated storage configuration resolved from Settings."""

    access_key_id: str
    secret_access_key: str
    bucket_name: str
    region: str

    def __repr__(self) -> str:
        return (
            f"StaticCredentials(access_key_id={mask_key(self.access_key_id)!r}, "
            f"bucket_name={self.bucket_name!r}, region={self.region!r})"
        )


def mask_key(key: str) -> str:
    """Show only the first eight characters of an access key."""
    if len(key) > MASK_VISIBLE_CHARS:
        return key[:MASK_VISIBLE_CHARS] + "***"
    return key + "***"


def resolve_storage_credentials(settings: Settings) -> StaticCredentials:
    """
    Read the four required storage settings.

    Args:
        settings: Application settings.

    Returns:
        StaticCredentials: The resolved configuration.

    Raises:
        ConfigurationError: If any required value is missing or blank.
    """
    required = {
        "AWS_ACCESS_KEY_ID": settings.aws_access_key_id,
        "AWS_SECRET_ACCESS_KEY": settings.aws_secret_access_key,
        "AWS_S3_BUCKET_NAME": settings.aws_s3_bucket_name,
        "AWS_REGION": settings.aws_region,
    }
    for env_name, value in required.items():
        if not value or not value.strip():
            raise ConfigurationError(f"{env_name} environment variable is required")

    return StaticCredentials(
        access_key_id=required["AWS_ACCESS_KEY_ID"].strip(),
        secret_access_key=required["AWS_SECRET_ACCESS_KEY"].strip(),
        bucket_name=required["AWS_S3_BUCKET_NAME"].strip(),
        region=required["AWS_REGION"].strip(),
    )


def detect_ambient_temporary_credentials(environ: dict[str, str] | None = None) -> list[str]:
    """
    Return the names of temporary-credential variables present in the environment.

    They are reported so operators can see that a role or session token is
    around, but they have no effect on the explicitly built session.
    """
    env = os.environ if environ is None else environ
    found = [name for name in TEMPORARY_CREDENTIAL_VARS if env.get(name)]
    for name in found:
        logger.info(
            "Ignoring %s: storage uses the configured static credentials only",
            name,
        )
    return found


def build_static_session(credentials: StaticCredentials) -> boto3.session.Session:
    """
    Build a boto3 session bound to the static key pair with no session token.

    Explicit credentials short-circuit botocore's provider chain, so neither
    environment tokens nor instance roles are consulted.
    """
    return boto3.session.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        aws_session_token=None,
        region_name=credentials.region,
    )


def verify_effective_credentials(
    session: boto3.session.Session,
    expected_access_key: str,
) -> None:
    """
    Re-resolve the credential in effect and compare it with the configured key.

    Raises:
        CredentialMismatchError: If no credential resolves or its access key
            differs from the configured one.
    """
    try:
        resolved = session.get_credentials()
    except BotoCoreError as e:
        raise CredentialMismatchError(f"failed to retrieve credentials: {e}") from e

    if resolved is None:
        raise CredentialMismatchError("no credentials resolved for the storage session")

    actual = resolved.get_frozen_credentials()
    expected_masked = mask_key(expected_access_key)
    actual_masked = mask_key(actual.access_key)

    logger.info(
        "S3 credentials verification",
        extra={
            "expected": expected_masked,
            "actual": actual_masked,
            "source": getattr(resolved, "method", "unknown"),
        },
    )

    if actual.access_key != expected_access_key:
        logger.error(
            "Access key mismatch detected: expected %s, got %s",
            expected_masked,
            actual_masked,
        )
        raise CredentialMismatchError(
            f"credentials mismatch: SDK is using {actual_masked} "
            f"instead of configured {expected_masked}"
        )

    if actual.token or not actual.access_key.startswith(PERMANENT_KEY_PREFIX):
        logger.warning(
            "Using temporary credentials instead of a permanent AKIA key; "
            "they will expire and may cause authentication failures"
        )
