"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRADE_SPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///trade_spine.db"

    # Ingestion
    num_workers: int = Field(default=4, ge=1)
    batch_size: int = Field(default=1000, ge=1)
    ingest_timeout_seconds: float = Field(default=840.0, gt=0)
    error_log_path: Path = Path("errors.log")
    file_encoding: str = "latin-1"  # B3 files are ISO-8859-1
    skip_header: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured store is SQLite."""
        return self.database_url.startswith("sqlite:")


# Global settings instance, for bootstrap code only (CLI, API factory).
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
