"""
News Service Module

This module provides database operations for curated news items: storing
scraped items, listing them with filters and pagination, toggling read and
important flags, and storing each item's highlight set.

Highlights are stored as a JSON array on the news row; one item owns its
whole set and the set is always written in full.
"""

import json
import logging
import math
from typing import Any

from ..models.news import NewsFilters
from .base_database_service import DEFAULT_DB_PATH, BaseDatabaseService
from .highlight_engine import coerce_highlights

# Configure logger for this module
logger = logging.getLogger(__name__)

_NEWS_COLUMNS = """
    id, title, content, summary, link, date, researcher, query,
    is_read, is_important, read_date, highlights, created_at, updated_at
"""


class NewsNotFoundError(LookupError):
    """Raised when a news item does not exist"""

    def __init__(self, news_id: int):
        super().__init__(f"News item {news_id} not found")
        self.news_id = news_id


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class NewsService(BaseDatabaseService):
    """
    Service class for managing news items using SQLite.

    This class provides database operations for:
    - Storing scraped news items (skipping links already stored for a researcher)
    - Listing items by researcher, read/important flags, day and search text
    - Read/important status updates
    - Highlight sets for each item
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """
        Initialize the news service.

        Args:
            db_path (str): Path to the SQLite database file
        """
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        """
        Initialize the news table and indexes.
        """
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS news (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,  -- Unique identifier for each item
                    title TEXT NOT NULL,                   -- Headline as scraped
                    content TEXT NOT NULL DEFAULT '',      -- Article body, if fetched
                    summary TEXT NOT NULL DEFAULT '',      -- Markdown-lite summary shown to analysts
                    link TEXT NOT NULL,                    -- Article URL
                    date TIMESTAMP NOT NULL,               -- Publication date (UTC)
                    researcher TEXT NOT NULL,              -- Analyst the item is curated for
                    query TEXT,                            -- Search query that produced the item
                    is_read INTEGER NOT NULL DEFAULT 0,
                    is_important INTEGER NOT NULL DEFAULT 0,
                    read_date TIMESTAMP,                   -- When the item was marked read
                    highlights TEXT NOT NULL DEFAULT '[]', -- JSON array of highlight ranges
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (researcher, link)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_news_researcher_date
                ON news(researcher, date)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_news_date
                ON news(date)
            """)

            conn.commit()

    def _row_to_dict(self, row) -> dict[str, Any]:
        """
        Convert a news row to a dictionary, parsing the highlights JSON.
        """
        try:
            raw_highlights = json.loads(row["highlights"] or "[]")
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Invalid highlights JSON for news {row['id']}")
            raw_highlights = []
        if not isinstance(raw_highlights, list):
            logger.warning(f"Highlights for news {row['id']} are not a list")
            raw_highlights = []

        return {
            "id": row["id"],
            "title": row["title"],
            "content": row["content"],
            "summary": row["summary"],
            "link": row["link"],
            "date": self.format_timestamp_iso(row["date"]),
            "researcher": row["researcher"],
            "query": row["query"],
            "is_read": bool(row["is_read"]),
            "is_important": bool(row["is_important"]),
            "read_date": self.format_timestamp_iso(row["read_date"]),
            "highlights": [
                h.model_dump(mode="json") for h in coerce_highlights(raw_highlights)
            ],
            "created_at": self.format_timestamp_iso(row["created_at"]),
            "updated_at": self.format_timestamp_iso(row["updated_at"]),
        }

    def create_news(
        self,
        title: str,
        link: str,
        researcher: str,
        content: str = "",
        summary: str = "",
        date: str | None = None,
        query: str | None = None,
    ) -> int | None:
        """
        Store a single news item.

        Args:
            title (str): Headline
            link (str): Article URL
            researcher (str): Analyst the item is curated for
            content (str): Article body
            summary (str): Markdown-lite summary
            date (str | None): ISO 8601 publication date, defaults to now
            query (str | None): Search query that produced the item

        Returns:
            int | None: The ID of the new item, or None if it could not be stored
        """
        try:
            now = self.get_current_timestamp()
            query_sql = """
                INSERT INTO news (
                    title, content, summary, link, date, researcher, query,
                    highlights, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, '[]', ?, ?)
            """
            params = (
                title,
                content,
                summary,
                link,
                self.normalize_timestamp(date),
                researcher,
                query,
                now,
                now,
            )
            news_id = self.execute_insert(query_sql, params)
            if news_id:
                logger.info(f"Saved news {news_id} for {researcher}: {title[:60]}")
            return news_id
        except Exception as e:
            logger.error(f"Error saving news item: {e}")
            return None

    def insert_many(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Store several news items, skipping links already stored for the same researcher.

        Args:
            items (list[dict[str, Any]]): Items with the create_news fields

        Returns:
            dict[str, Any]: inserted_count, inserted_ids and skipped_count
        """
        now = self.get_current_timestamp()
        inserted_ids = []
        skipped = 0
        with self.get_connection() as conn:
            for item in items:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO news (
                        title, content, summary, link, date, researcher, query,
                        highlights, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, '[]', ?, ?)
                    """,
                    (
                        item["title"],
                        item.get("content") or "",
                        item.get("summary") or "",
                        item["link"],
                        self.normalize_timestamp(item.get("date")),
                        item["researcher"],
                        item.get("query"),
                        now,
                        now,
                    ),
                )
                if cursor.rowcount:
                    inserted_ids.append(cursor.lastrowid)
                else:
                    skipped += 1
            conn.commit()

        logger.info(f"Inserted {len(inserted_ids)} news items, skipped {skipped}")
        return {
            "inserted_count": len(inserted_ids),
            "inserted_ids": inserted_ids,
            "skipped_count": skipped,
        }

    def get_news_by_id(self, news_id: int) -> dict[str, Any] | None:
        """
        Retrieve a news item by ID.

        Returns:
            dict[str, Any] | None: The item, or None if not found
        """
        try:
            row = self.execute_query(
                f"SELECT {_NEWS_COLUMNS} FROM news WHERE id = ?",
                (news_id,),
                fetch_one=True,
            )
            return self._row_to_dict(row) if row else None
        except Exception as e:
            logger.error(f"Error getting news {news_id}: {e}")
            return None

    def _build_filters(self, filters: NewsFilters) -> tuple[str, list[Any]]:
        clauses = []
        params: list[Any] = []

        if filters.researcher and filters.researcher != "all":
            clauses.append("researcher = ?")
            params.append(filters.researcher)

        if filters.show_read is not None:
            clauses.append("is_read = ?")
            params.append(int(filters.show_read))

        # Important items live in their own view, so the flag always filters
        clauses.append("is_important = ?")
        params.append(int(filters.show_important))

        if filters.selected_date is not None:
            clauses.append("date(date) = ?")
            params.append(filters.selected_date.isoformat())

        if filters.query:
            clauses.append("query = ?")
            params.append(filters.query)

        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            clauses.append(
                "(title LIKE ? ESCAPE '\\' OR summary LIKE ? ESCAPE '\\' "
                "OR content LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern, pattern])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def list_news(
        self, filters: NewsFilters, page: int = 1, page_size: int = 20
    ) -> dict[str, Any]:
        """
        List news items matching the filters, newest first.

        Args:
            filters (NewsFilters): Researcher, flags, day and search filters
            page (int): 1-based page number
            page_size (int): Items per page

        Returns:
            dict[str, Any]: items, total, page, page_size and total_pages
        """
        where, params = self._build_filters(filters)
        empty = {
            "items": [],
            "total": 0,
            "page": page,
            "page_size": page_size,
            "total_pages": 0,
        }
        try:
            count_row = self.execute_query(
                f"SELECT COUNT(*) AS total FROM news {where}",
                tuple(params),
                fetch_one=True,
            )
            total = count_row["total"] if count_row else 0

            rows = self.execute_query(
                f"""
                SELECT {_NEWS_COLUMNS} FROM news {where}
                ORDER BY date DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (*params, page_size, (page - 1) * page_size),
                fetch_all=True,
            )
            logger.debug(f"News query {where} {params} matched {total} items")
            return {
                "items": [self._row_to_dict(row) for row in rows or []],
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": math.ceil(total / page_size) if page_size else 0,
            }
        except Exception as e:
            logger.error(f"Error listing news: {e}")
            return empty

    def set_read_status(self, news_id: int, is_read: bool = True) -> bool:
        """
        Mark a news item read or unread.

        Marking read stamps read_date; marking unread clears it.

        Returns:
            bool: True if the item was updated, False if it was not found
        """
        now = self.get_current_timestamp()
        updated = self.execute_update_delete(
            """
            UPDATE news
            SET is_read = ?, read_date = ?, updated_at = ?
            WHERE id = ?
            """,
            (int(is_read), now if is_read else None, now, news_id),
        )
        if updated:
            logger.info(f"Marked news {news_id} {'read' if is_read else 'unread'}")
        return updated

    def set_important(self, news_id: int, is_important: bool) -> bool:
        """
        Mark a news item important or not.

        Returns:
            bool: True if the item was updated, False if it was not found
        """
        updated = self.execute_update_delete(
            "UPDATE news SET is_important = ?, updated_at = ? WHERE id = ?",
            (int(is_important), self.get_current_timestamp(), news_id),
        )
        if updated:
            logger.info(f"Set news {news_id} important={is_important}")
        return updated

    def get_highlights(self, news_id: int) -> list[dict[str, Any]] | None:
        """
        Retrieve the stored highlight set of a news item.

        Returns:
            list[dict[str, Any]] | None: Highlights, or None if the item does not exist
        """
        item = self.get_news_by_id(news_id)
        return item["highlights"] if item else None

    def update_highlights(self, news_id: int, highlights: list[dict[str, Any]]) -> bool:
        """
        Replace the stored highlight set of a news item.

        Args:
            news_id (int): The news item
            highlights (list[dict[str, Any]]): JSON-serializable highlight dicts

        Returns:
            bool: True if the item was updated, False if it was not found
        """
        try:
            updated = self.execute_update_delete(
                "UPDATE news SET highlights = ?, updated_at = ? WHERE id = ?",
                (json.dumps(highlights), self.get_current_timestamp(), news_id),
            )
            if updated:
                logger.info(f"Stored {len(highlights)} highlights for news {news_id}")
            return updated
        except Exception as e:
            logger.error(f"Error updating highlights for news {news_id}: {e}")
            return False

    def get_researchers(self) -> list[str]:
        """Distinct researchers with at least one news item, sorted"""
        rows = self.execute_query(
            "SELECT DISTINCT researcher FROM news ORDER BY researcher",
            fetch_all=True,
        )
        return [row["researcher"] for row in rows or []]

    def get_queries(self) -> list[str]:
        """Distinct non-empty search queries, sorted"""
        rows = self.execute_query(
            """
            SELECT DISTINCT query FROM news
            WHERE query IS NOT NULL AND query != ''
            ORDER BY query
            """,
            fetch_all=True,
        )
        return [row["query"] for row in rows or []]
