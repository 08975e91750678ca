"""
Configuration and settings for the gallery backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    port: int = Field(default=5000)
    cors_allow_origins: str = Field(default="*")
    log_level: str = Field(default="INFO")

    # Metadata store (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # Asset provider: "cloudinary" or "s3"
    asset_provider: str = Field(default="cloudinary")
    upload_folder: str = Field(default="gallery")

    # Cloudinary
    cloud_name: Optional[str] = Field(default=None)
    api_key: Optional[str] = Field(default=None)
    api_secret: Optional[str] = Field(default=None)

    # S3-compatible storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    s3_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Webhooks
    cloudinary_webhook_token: Optional[str] = Field(default=None)
    webhook_require_delete_type: bool = Field(default=False)

    # Reconciliation
    probe_timeout: Optional[float] = Field(default=None)
    reconcile_max_workers: int = Field(default=1, ge=1)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
