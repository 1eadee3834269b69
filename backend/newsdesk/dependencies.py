"""
Service providers for the API routers.

Each provider builds its service once from the application settings.
Tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache

from .config import get_settings
from .services.highlight_editor import HighlightEditor
from .services.news_scraper import NewsScraperService
from .services.news_service import NewsService


@lru_cache
def get_news_service() -> NewsService:
    return NewsService(get_settings().db_path)


@lru_cache
def get_highlight_editor() -> HighlightEditor:
    settings = get_settings()
    return HighlightEditor(
        get_news_service(),
        delay=settings.highlight_debounce_seconds,
        max_engines=settings.highlight_cache_size,
    )


@lru_cache
def get_scraper_service() -> NewsScraperService:
    settings = get_settings()
    return NewsScraperService(
        get_news_service(),
        default_researcher=settings.default_researcher,
        timeout=settings.scraper_timeout_seconds,
        max_concurrency=settings.scraper_max_concurrency,
    )
