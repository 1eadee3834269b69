from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..config import Settings, get_settings
from ..dependencies import get_highlight_editor, get_news_service
from ..models.news import NewsFilters, NewsItem, NewsPage
from ..services.highlight_editor import HighlightEditor
from ..services.news_service import NewsService

router = APIRouter(prefix="/news", tags=["news"])


class ReadStatusRequest(BaseModel):
    is_read: bool = True


class ImportantRequest(BaseModel):
    is_important: bool


@router.get("/", response_model=NewsPage)
async def list_news(
    researcher: Optional[str] = None,
    show_read: Optional[bool] = None,
    show_important: bool = False,
    selected_date: Optional[date] = None,
    q: Optional[str] = None,
    query: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    news_service: NewsService = Depends(get_news_service),
    settings: Settings = Depends(get_settings),
):
    """
    List news items, newest first.

    Args:
        researcher: Only items for this researcher ("all" or absent for everyone)
        show_read: True for read items only, False for unread only, absent for both
        show_important: True for important items only, otherwise non-important only
        selected_date: Only items published on this UTC day (YYYY-MM-DD)
        q: Case-insensitive search over title, summary and content
        query: Only items produced by this search query
        page: 1-based page number
        page_size: Items per page, capped by the configured maximum

    Returns:
        NewsPage: The requested page and paging totals
    """
    try:
        size = min(page_size or settings.default_page_size, settings.max_page_size)
        filters = NewsFilters(
            researcher=researcher,
            show_read=show_read,
            show_important=show_important,
            selected_date=selected_date,
            search=q.strip() if q and q.strip() else None,
            query=query,
        )
        return NewsPage(**news_service.list_news(filters, page=page, page_size=size))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching news: {str(e)}")


@router.get("/{news_id}", response_model=NewsItem)
async def get_news(
    news_id: int,
    news_service: NewsService = Depends(get_news_service),
    editor: HighlightEditor = Depends(get_highlight_editor),
):
    """Get one news item, with its current highlight set."""
    try:
        item = news_service.get_news_by_id(news_id)
        if item is None:
            raise HTTPException(status_code=404, detail="News not found")

        item["highlights"] = editor.get_highlights(news_id)
        return NewsItem(**item)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving news: {str(e)}"
        )


@router.patch("/{news_id}/read", response_model=Dict[str, Any])
async def update_read_status(
    news_id: int,
    payload: ReadStatusRequest = ReadStatusRequest(),
    news_service: NewsService = Depends(get_news_service),
):
    """Mark a news item read (the default) or unread."""
    try:
        success = news_service.set_read_status(news_id, payload.is_read)
        if not success:
            raise HTTPException(status_code=404, detail="News not found")

        return {"success": True, "is_read": payload.is_read}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error updating read status: {str(e)}"
        )


@router.patch("/{news_id}/important", response_model=Dict[str, Any])
async def update_important(
    news_id: int,
    payload: ImportantRequest,
    news_service: NewsService = Depends(get_news_service),
):
    """Mark a news item important or not."""
    try:
        success = news_service.set_important(news_id, payload.is_important)
        if not success:
            raise HTTPException(status_code=404, detail="News not found")

        return {"success": True, "is_important": payload.is_important}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error updating importance: {str(e)}"
        )
