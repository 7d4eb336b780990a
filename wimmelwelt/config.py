"""
Configuration and settings for the Wimmel Welt backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)
    database_connect_timeout_seconds: int = Field(default=10)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # File storage
    storage_mode: Literal["local", "s3"] = Field(default="s3")
    local_upload_dir: str = Field(default="uploads")
    file_upload_max_bytes: int = Field(default=25 * 1024 * 1024)
    membership_invoice_key: Optional[str] = Field(default=None)

    # S3-compatible object storage
    aws_s3_bucket: Optional[str] = Field(default=None)
    aws_region: str = Field(default="eu-north-1")
    aws_s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    s3_connect_timeout_seconds: float = Field(default=5.0)
    s3_read_timeout_seconds: float = Field(default=30.0)
    s3_max_attempts: int = Field(default=3)

    # Queue (Redis) for notification jobs
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="wimmelwelt:notifications")

    # Outgoing mail
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_secure: bool = Field(default=False)
    smtp_user: Optional[str] = Field(default=None)
    smtp_pass: Optional[str] = Field(default=None)
    smtp_from: Optional[str] = Field(default=None)
    smtp_timeout_seconds: float = Field(default=10.0)
    app_url: str = Field(default="https://app.wimmelwelt.local/familienzentrum")

    # Session cookie
    session_secret: str = Field(default="change-me")
    session_cookie_name: str = Field(default="ww_auth")
    session_max_age_seconds: int = Field(default=30 * 24 * 60 * 60)
    session_cookie_secure: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
