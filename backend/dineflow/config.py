"""Application configuration and settings."""

import logging
import sys
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DINEFLOW_",
        extra="ignore",
    )

    # Application
    app_name: str = "Dineflow Order Service"
    app_version: str = "1.0.0"
    debug: bool = False
    api_prefix: str = "/api"

    # Persistence
    store_backend: Literal["sql", "memory"] = "sql"
    database_url: str = "sqlite+aiosqlite:///./dineflow.db"
    database_echo: bool = False

    # Optimistic concurrency retry
    conflict_max_attempts: int = 5
    persistence_max_attempts: int = 3
    retry_base_delay_ms: int = 20  # base exponential backoff delay
    retry_max_delay_ms: int = 500  # backoff cap
    retry_jitter_ms: int = 20  # random jitter range

    # Notifications
    notification_history_size: int = 1000
    notification_icon: str = "/vite.svg"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure application-wide logging and return the package logger."""
    settings = get_settings()
    if settings.debug:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("dineflow")
