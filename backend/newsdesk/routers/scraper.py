from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..dependencies import get_scraper_service
from ..services.news_scraper import NewsScraperService, ScraperError

router = APIRouter(prefix="/scraper", tags=["scraper"])


class ScrapeRequest(BaseModel):
    query: Optional[str] = None
    queries: List[str] = []
    save_to_db: bool = False
    researcher: Optional[str] = None


def _message(query: str, count: int, saved: bool) -> str:
    suffix = " (saved to database)" if saved else ""
    return f"Found {count} results for query: {query}{suffix}"


@router.get("/bing", response_model=Dict[str, Any])
async def scrape_bing(
    q: str,
    save: Optional[str] = None,
    researcher: Optional[str] = None,
    scraper: NewsScraperService = Depends(get_scraper_service),
):
    """
    Scrape Bing News for a query.

    Args:
        q: Search query
        save: "true" or "1" to store the results as news items
        researcher: Researcher to store the results for (defaults to the configured one)
    """
    if not q.strip():
        raise HTTPException(status_code=400, detail='Query parameter "q" is required')

    try:
        outcome = await scraper.scrape(
            q, save=save in ("true", "1"), researcher=researcher
        )
        return {
            "success": True,
            "data": outcome["results"],
            "message": _message(
                q, len(outcome["results"]), outcome["save_result"] is not None
            ),
            "save_result": outcome["save_result"],
        }
    except ScraperError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error scraping news: {str(e)}")


@router.post("/bing", response_model=Dict[str, Any])
async def scrape_bing_batch(
    payload: ScrapeRequest,
    scraper: NewsScraperService = Depends(get_scraper_service),
):
    """
    Scrape Bing News for one or more queries.

    Several queries are fetched concurrently; a failed query is reported in
    its own entry without failing the request.
    """
    queries = [q.strip() for q in ([payload.query] if payload.query else []) + payload.queries]
    queries = [q for q in queries if q]
    if not queries:
        raise HTTPException(
            status_code=400, detail="Query is required and must be a string"
        )

    try:
        outcomes = await scraper.scrape_many(
            queries, save=payload.save_to_db, researcher=payload.researcher
        )
        total = sum(len(o["results"]) for o in outcomes)
        return {
            "success": all(o["error"] is None for o in outcomes),
            "data": outcomes,
            "message": f"Found {total} results for {len(queries)} queries",
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error scraping news: {str(e)}")
