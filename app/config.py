"""
Event Reporting Backend Configuration Module

This module provides configuration management for the event reporting backend
using Pydantic Settings. It loads and validates the environment variables
required for:
- Application settings (name, environment, debug mode, logging)
- MongoDB connection and pooling for media records
- Local JWT authentication
- S3 object storage with static credentials and presigned URL support

All settings support environment variable overrides and .env file loading.
Storage credentials are intentionally optional at this layer: their absence is
reported by the credential resolver as a ConfigurationError at startup, so the
application can name the exact missing variable.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration settings for the event reporting backend.

    Configuration Categories:
    - Application: Core app settings like name, environment, debug mode
    - Auth: Secret key and JWT parameters for bearer token validation
    - MongoDB: Database connection URI and connection pool settings
    - Storage: S3 static credentials, bucket, region and presign defaults

    Example usage:
        ```python
        from app.config import get_settings

        settings = get_settings()
        print(f"Media bucket: {settings.aws_s3_bucket_name}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="Event Reporting Backend",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=False, description="Enable debug mode with hot-reload")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=True, description="Emit structured JSON logs instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8080, description="Port number for the API server", ge=1, le=65535)

    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="List of allowed CORS origins for frontend access",
    )

    # =========================================================================
    # Auth Configuration
    # =========================================================================

    secret_key: str = Field(
        default="development-secret-key-change-in-production-32chars",
        description="Secret key for JWT signing. Must be a secure random string.",
        min_length=32,
    )

    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    jwt_expiration_hours: int = Field(
        default=24, description="JWT token expiration time in hours", ge=1, le=168
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(
        default="event_reporting", description="MongoDB database name for media records"
    )

    mongodb_min_pool_size: int = Field(
        default=10, description="Minimum number of connections in MongoDB connection pool", ge=1
    )

    mongodb_max_pool_size: int = Field(
        default=100, description="Maximum number of connections in MongoDB connection pool", ge=10
    )

    # =========================================================================
    # S3 Storage Configuration
    # =========================================================================

    aws_access_key_id: str | None = Field(
        default=None, description="Static S3 access key ID (long-lived AKIA key expected)"
    )

    aws_secret_access_key: str | None = Field(
        default=None, description="Static S3 secret access key"
    )

    aws_s3_bucket_name: str | None = Field(
        default=None, description="S3 bucket holding all uploaded media"
    )

    aws_region: str | None = Field(default=None, description="AWS region of the media bucket")

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL (None for AWS S3)"
    )

    storage_verify_on_startup: bool = Field(
        default=True,
        description="Run bucket permission checks during application startup",
    )

    presigned_url_expiration_seconds: int = Field(
        default=3600,
        description="Default validity of single presigned download URLs in seconds",
        ge=1,
        le=604800,
    )

    # =========================================================================
    # Model Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only symmetric algorithms are supported for locally issued tokens."""
        valid_algorithms = {"HS256", "HS384", "HS512"}
        if v.upper() not in valid_algorithms:
            raise ValueError(
                f"Invalid jwt_algorithm '{v}'. Must be one of: {', '.join(valid_algorithms)}"
            )
        return v.upper()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    The @lru_cache decorator ensures that the Settings object is created only
    once on first call, and subsequent calls return the cached instance without
    re-reading environment variables or .env files.

    Returns:
        Settings: The global configuration instance.
    """
    return Settings()
