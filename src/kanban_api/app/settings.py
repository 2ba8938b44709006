"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

DEFAULT_ALLOWED_ORIGINS = [
    "https://react-kanban-board-tanzil.netlify.app",
    "http://localhost:5173",
]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "kanban-api"
    database_url: str = ""
    storage_backend: Literal["postgres", "memory"] = "postgres"
    upload_dir: Path = Path("uploads")
    allowed_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    # Per-file limit in bytes; 0 disables the check.
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=0)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="KANBAN_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
