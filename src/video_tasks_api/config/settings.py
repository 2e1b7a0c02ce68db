"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "video-tasks-api"
    log_level: str = "INFO"
    content_root: Path = Path("uploads/videos")
    metadata_root: Path = Path("uploads/metadata")
    metadata_backend: Literal["file", "postgres"] = "file"
    database_url: str = ""
    artifact_media_type: str = "video/mp4"
    artifact_extension: str = ".mp4"
    max_upload_bytes: int = Field(default=2 * 1024 * 1024 * 1024, ge=1)
    chunk_size: int = Field(default=64 * 1024, ge=1024)

    model_config = SettingsConfigDict(
        env_prefix="VIDEO_TASKS_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
