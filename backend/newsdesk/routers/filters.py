from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_news_service
from ..services.news_service import NewsService

router = APIRouter(tags=["filters"])


@router.get("/researchers", response_model=List[str])
async def get_researchers(news_service: NewsService = Depends(get_news_service)):
    """Get the researchers that have news items, for the filter dropdown."""
    try:
        return news_service.get_researchers()
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error fetching researchers: {str(e)}"
        )


@router.get("/queries", response_model=List[str])
async def get_queries(news_service: NewsService = Depends(get_news_service)):
    """Get the search queries that produced news items."""
    try:
        return news_service.get_queries()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error fetching queries: {str(e)}")
