"""Environment-based configuration for photoingest."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from PHOTOINGEST_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PHOTOINGEST_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # Storage roots
    staging_root: Path = Path("uploads/temp")
    staging_url_prefix: str = "/uploads/temp"
    production_root: Path = Path("photo")

    # Directory an upstream proxy spools uploads into (None = spooled uploads rejected)
    upload_tmp_dir: Path | None = None

    # Subject id -> canonical path mapping (JSON object)
    subjects_file: Path | None = None

    # Input limits
    max_file_size: int = Field(default=10_485_760, ge=1)
    max_image_pixels: int = Field(default=50_000_000, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    # Seconds a request may wait for a free worker before a 503
    queue_timeout: float = Field(default=5.0, gt=0)

    # Leave already-written derivatives on disk when a later write fails
    keep_partial_uploads: bool = False


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
