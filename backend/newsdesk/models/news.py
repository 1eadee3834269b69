"""
News Type Models

Pydantic models for curated news items and the filters used to list them.
"""

from datetime import date

from pydantic import BaseModel, Field

from .highlights import Highlight


class NewsItem(BaseModel):
    """A scraped news item curated for a researcher"""

    id: int
    title: str
    content: str = ""
    summary: str = ""
    link: str
    date: str  # ISO 8601 timestamp string
    researcher: str
    query: str | None = None
    is_read: bool = False
    is_important: bool = False
    read_date: str | None = None
    highlights: list[Highlight] = Field(default_factory=list)
    created_at: str
    updated_at: str


class NewsFilters(BaseModel):
    """Filters for listing news items"""

    researcher: str | None = None  # None or "all" disables the filter
    show_read: bool | None = None  # True: only read, False: only unread
    show_important: bool = False  # True: only important, False: only not important
    selected_date: date | None = None
    search: str | None = None
    query: str | None = None


class NewsPage(BaseModel):
    """One page of news items"""

    items: list[NewsItem]
    total: int
    page: int
    page_size: int
    total_pages: int
