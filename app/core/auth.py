"""
Bearer Token Authentication

Locally issued HS-family JWTs protect the media endpoints. Tokens carry the
caller's identifier (``sub``) and email; the claims are trusted as-is and no
user lookup is performed, user management lives in a separate service.

Usage:
    ```python
    from app.core.auth import get_current_user

    @router.get("/protected")
    async def protected(user: dict = Depends(get_current_user)):
        return {"user": user["sub"]}
    ```
"""

import logging

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from app.config import Settings, get_settings


# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Security Scheme
# =============================================================================

# HTTPBearer security scheme for extracting Bearer tokens from Authorization header
security = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication.",
    auto_error=True,
)


# =============================================================================
# Local JWT Functions
# =============================================================================


def create_local_jwt(user_id: str, email: str, settings: Settings) -> str:
    """
    Create a signed JWT for a user.

    Token claims:
    - sub: User ID (subject)
    - email: User's email address
    - exp: Expiration timestamp (jwt_expiration_hours from now)
    - iat: Issued at timestamp
    - type: "local"
    """
    now = datetime.now(UTC)
    expire = now + timedelta(hours=settings.jwt_expiration_hours)

    payload = {
        "sub": user_id,
        "email": email,
        "exp": expire,
        "iat": now,
        "type": "local",
    }

    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)

    logger.info("Created local JWT for user: %s (expires: %s)", user_id, expire.isoformat())
    return token


def validate_local_jwt(token: str, settings: Settings) -> dict[str, Any]:
    """
    Verify a token's signature and expiry.

    Raises:
        JWTError: If the token is invalid, expired, or signature verification fails.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        logger.warning("Local JWT has expired")
        raise
    except JWTError as e:
        logger.warning("Local JWT validation failed: %s", str(e))
        raise

    logger.debug("Local JWT validated for subject: %s", payload.get("sub", "unknown"))
    return payload


def create_access_token(
    user_id: str,
    email: str,
    settings: Settings | None = None,
) -> str:
    """Create an access token for the given user with the application settings."""
    return create_local_jwt(user_id, email, settings or get_settings())


# =============================================================================
# FastAPI Dependencies
# =============================================================================


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Resolve the caller from the Bearer token.

    Returns:
        dict: Token claims; ``sub`` is always present.

    Raises:
        HTTPException: 401 if the token is invalid, expired or has no subject.
    """
    try:
        claims = validate_local_jwt(credentials.credentials, settings)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if not claims.get("sub"):
        logger.warning("Token missing 'sub' claim")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user identifier",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return claims


def user_identifier(user: dict[str, Any]) -> str:
    """Identifier recorded in created_by/updated_by: email when present, else subject."""
    return user.get("email") or user["sub"]
