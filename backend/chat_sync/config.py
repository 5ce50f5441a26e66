"""Application configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Marketplace Chat Sync"
    database_url: str = f"sqlite+pysqlite:///{_BACKEND_DIR / 'data' / 'chat_sync.db'}"
    remote_base_url: str = "https://firestore.googleapis.com/v1"
    remote_project_id: str | None = None
    remote_database: str = "(default)"
    remote_api_key: str | None = None
    remote_auth_token: str | None = None
    remote_timeout_seconds: int = 15
    remote_workers: int = 3
    poll_interval_seconds: float = 5.0
    shutdown_timeout_seconds: float = 5.0
    list_page_size: int = 300
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    model_config = SettingsConfigDict(
        env_prefix="CHAT_SYNC_",
        env_file=str(_BACKEND_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
