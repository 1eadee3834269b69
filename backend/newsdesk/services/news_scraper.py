"""
News Scraper Service

Fetches Bing News search results for a query and optionally stores them as
news items. Bing changes its markup often, so several selectors are tried
in order and the first one that matches anything wins; a broader fallback
set is used when none match.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup

from .news_service import NewsService

logger = logging.getLogger(__name__)

BING_BASE_URL = "https://www.bing.com"
# Results from the last 7 days
BING_SEARCH_URL = BING_BASE_URL + "/news/search?q={query}&qft=interval%3d%227%22&form=PTFTNR"

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
}

PRIMARY_SELECTORS = (
    "a.title",
    '.news-card a[href*="http"]',
    '.na_cnt a[href*="http"]',
    "a[data-author]",
    ".newsitem a",
    "h2 a",
    'a[href*="/news/"]',
    ".news-card-body a",
    "article a",
    ".caption a",
)
FALLBACK_SELECTORS = ('a[href*="news"]', 'a[href*="article"]', "a[title]")
FALLBACK_LIMIT = 10

MIN_TITLE_LENGTH = 10
SPAM_PHRASES = ("top stock", "stock to watch", "stock to buy")


class ScraperError(RuntimeError):
    """Raised when a search page cannot be fetched"""


@dataclass
class NewsResult:
    """A single search result"""

    query: str
    title: str
    url: str
    content: str = ""
    author: str = ""


def build_search_url(query: str) -> str:
    """Build the Bing News search URL for a query (words joined with '+')."""
    words = [quote_plus(word) for word in query.split()]
    return BING_SEARCH_URL.format(query="+".join(words))


def _absolute_url(href: str) -> str | None:
    if href.startswith("/"):
        return BING_BASE_URL + href
    if href.startswith("http"):
        return href
    return None


def _is_spam(title: str) -> bool:
    lowered = title.lower()
    return any(phrase in lowered for phrase in SPAM_PHRASES)


def _author_for(link) -> str:
    author = link.get("data-author")
    if author:
        return author
    item = link.find_parent(class_="newsitem")
    if item is not None:
        tagged = item.find(attrs={"data-author": True})
        if tagged is not None:
            return tagged.get("data-author", "")
    return ""


def parse_results(html: str, query: str) -> list[NewsResult]:
    """
    Extract news results from a Bing News results page.

    Args:
        html: Page HTML
        query: The query the page was fetched for

    Returns:
        list[NewsResult]: Results in page order, without duplicates or spam
    """
    soup = BeautifulSoup(html, "html.parser")
    results: list[NewsResult] = []
    seen: set[str] = set()

    def collect(links, use_title_attr: bool) -> None:
        for link in links:
            href = link.get("href")
            title = link.get_text(strip=True)
            if not title and use_title_attr:
                title = (link.get("title") or "").strip()
            if not href or len(title) < MIN_TITLE_LENGTH:
                continue
            url = _absolute_url(href)
            if url is None or url in seen:
                continue
            if _is_spam(title):
                logger.debug(f"Skipping spam result: {title[:60]}")
                continue
            seen.add(url)
            results.append(
                NewsResult(query=query, title=title, url=url, author=_author_for(link))
            )

    for selector in PRIMARY_SELECTORS:
        links = soup.select(selector)
        logger.debug(f"Selector '{selector}' found {len(links)} links")
        if links:
            collect(links, use_title_attr=False)
            break
    else:
        logger.info("No links found with primary selectors, trying fallback")
        for selector in FALLBACK_SELECTORS:
            links = soup.select(selector)[:FALLBACK_LIMIT]
            if links:
                logger.debug(f"Fallback selector '{selector}' found {len(links)} links")
                collect(links, use_title_attr=True)
                if results:
                    break

    if not results:
        logger.warning(f"No results parsed for '{query}' (html length {len(html)})")
    return results


class NewsScraperService:
    """Scrape Bing News and store the results as news items"""

    def __init__(
        self,
        news_service: NewsService,
        default_researcher: str,
        timeout: float = 15.0,
        max_concurrency: int = 4,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.news_service = news_service
        self.default_researcher = default_researcher
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=REQUEST_HEADERS,
            follow_redirects=True,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_results(
        self, query: str, client: httpx.AsyncClient | None = None
    ) -> list[NewsResult]:
        """
        Fetch and parse search results for one query.

        Raises:
            ScraperError: If the page cannot be fetched
        """
        url = build_search_url(query)
        logger.info(f"Searching URL: {url}")
        try:
            if client is None:
                async with self._client() as own_client:
                    response = await own_client.get(url)
            else:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error fetching results for '{query}': {e}")
            raise ScraperError(f"Failed to fetch results for '{query}': {e}") from e

        results = parse_results(response.text, query)
        logger.info(f"Found {len(results)} results for '{query}'")
        return results

    def save_results(
        self, query: str, results: list[NewsResult], researcher: str | None = None
    ) -> dict[str, Any]:
        """
        Store results as unread, unimportant news items with an empty summary.

        Returns:
            dict[str, Any]: inserted_count, inserted_ids and skipped_count
        """
        researcher = researcher or self.default_researcher
        items = [
            {
                "title": result.title,
                "link": result.url,
                "content": result.content,
                "summary": "",
                "researcher": researcher,
                "query": query,
            }
            for result in results
        ]
        return self.news_service.insert_many(items)

    async def scrape(
        self, query: str, save: bool = False, researcher: str | None = None
    ) -> dict[str, Any]:
        """
        Scrape one query and optionally store the results.

        A failed save is logged and reported as save_result None; the scraped
        results are still returned.
        """
        results = await self.fetch_results(query)
        save_result = None
        if save:
            try:
                save_result = await asyncio.to_thread(
                    self.save_results, query, results, researcher
                )
            except Exception as e:
                logger.error(f"Failed to save results for '{query}': {e}")
        return {
            "query": query,
            "results": [asdict(result) for result in results],
            "save_result": save_result,
        }

    async def scrape_many(
        self, queries: list[str], save: bool = False, researcher: str | None = None
    ) -> list[dict[str, Any]]:
        """
        Scrape several queries with at most ``max_concurrency`` requests in flight.

        One failed query does not stop the others; it is reported with its error.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def scrape_one(query: str, client: httpx.AsyncClient) -> dict[str, Any]:
            async with semaphore:
                try:
                    results = await self.fetch_results(query, client)
                except ScraperError as e:
                    return {"query": query, "results": [], "save_result": None, "error": str(e)}

            save_result = None
            if save:
                try:
                    save_result = await asyncio.to_thread(
                        self.save_results, query, results, researcher
                    )
                except Exception as e:
                    logger.error(f"Failed to save results for '{query}': {e}")
            return {
                "query": query,
                "results": [asdict(result) for result in results],
                "save_result": save_result,
                "error": None,
            }

        async with self._client() as client:
            return await asyncio.gather(*(scrape_one(q, client) for q in queries))
