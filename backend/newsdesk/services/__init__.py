"""
Services Package

This package contains the news storage service, the highlight engine and
its supporting services (summary canonicalisation, selection mapping and
debounced persistence), and the Bing News scraper.
"""

from .base_database_service import BaseDatabaseService
from .highlight_editor import HighlightEditor
from .highlight_engine import (
    HighlightEngine,
    SelectionError,
    merge_highlights,
    render_highlights,
    render_summary,
    strip_markers,
)
from .highlight_persistence import DebouncedHighlightWriter
from .news_scraper import NewsScraperService, ScraperError
from .news_service import NewsNotFoundError, NewsService
from .summary_formatter import canonicalize_summary

__all__ = [
    "BaseDatabaseService",
    "NewsService",
    "NewsNotFoundError",
    "HighlightEngine",
    "HighlightEditor",
    "DebouncedHighlightWriter",
    "SelectionError",
    "merge_highlights",
    "render_highlights",
    "render_summary",
    "strip_markers",
    "canonicalize_summary",
    "NewsScraperService",
    "ScraperError",
]
