"""Application settings using Pydantic BaseSettings."""

import os
import re

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_async_database_url() -> str:
    """Get database URL converted for asyncpg driver."""
    url = os.environ.get("DATABASE_URL", "")
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
        url = url.rstrip('?&')
    return url or "sqlite+aiosqlite:///./whatsapp_ingest.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # GCP Configuration (optional for local dev)
    gcp_project_id: str = "local-development"

    # Cloud SQL (Postgres)
    database_url: str = ""

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Field encryption (channel instance credentials)
    field_encryption_key: str | None = None

    # Webhook signature verification
    webhook_signature_strict: bool = True
    webhook_shared_secret: str | None = None  # Used when an instance has no secret of its own

    # Gateway calls (seconds)
    gateway_lookup_timeout_seconds: float = 5.0
    gateway_avatar_timeout_seconds: float = 8.0
    gateway_media_timeout_seconds: float = 15.0

    # Media storage (GCS)
    gcs_media_bucket: str = "message-attachments"
    media_signed_url_ttl_seconds: int = 3600
    media_max_bytes: int = 25 * 1024 * 1024
    media_upload_timeout_seconds: float = 30.0

    # Phone handling
    default_country_code: str = "55"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
