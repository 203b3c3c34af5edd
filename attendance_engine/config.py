"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Attendance Engine"
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./attendance.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    storage_backend: Literal["sql", "memory"] = "sql"

    # Reports
    report_cache_max_entries: int | None = None
    trend_flat_band: float = 0.5  # percentage points

    # Alerts
    alert_window_days: int = 30
    parent_notification_webhook_url: str | None = None
    parent_notification_webhook_secret: str = ""

    # External query-answering service (optional)
    query_service_url: str | None = None
    query_service_api_key: str = ""
    query_service_timeout_seconds: float = 10.0
    query_retry_attempts: int = 3
    query_retry_base_delay_seconds: float = 1.0
    query_retry_max_delay_seconds: float = 10.0
    query_max_length: int = 500

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def async_database_url(self) -> str:
        """Get database URL with an async driver for SQLAlchemy."""
        url = self.database_url
        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def query_service_configured(self) -> bool:
        """Check if the external query-answering service is configured."""
        return bool(self.query_service_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
