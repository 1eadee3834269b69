"""
Application configuration using pydantic-settings.

All environment variables are read through the Settings class with the
``NEWSDESK_`` prefix (for example ``NEWSDESK_DB_PATH``). Consumers call
``get_settings()`` to obtain a cached instance. Tests construct
``Settings(_env_file=None, ...)`` directly for isolation.
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime settings for the news desk API."""

    model_config = SettingsConfigDict(
        env_prefix="NEWSDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: str = "data/news.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Highlight persistence
    highlight_debounce_seconds: float = 0.8
    highlight_cache_size: int = 256  # In-memory highlight engines kept by the editor

    # Scraper
    scraper_timeout_seconds: float = 15.0
    scraper_max_concurrency: int = 4
    default_researcher: str = "Elon Musk"


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings."""
    settings = Settings()
    logger.debug(f"Loaded settings: db_path={settings.db_path}")
    return settings
