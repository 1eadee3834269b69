"""
Highlight Editor Service

Keeps one in-memory HighlightEngine per news item and applies highlight
edits optimistically: the in-memory set changes first, then a debounced
write to the database is scheduled. Reads go through the editor so they
see the optimistic state. A failed write is logged and reported on the
returned task; the in-memory state is not rolled back.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Iterable
from typing import Any

from ..models.highlights import Highlight, SelectionPoint
from .highlight_engine import HighlightEngine
from .highlight_persistence import DEFAULT_DEBOUNCE_SECONDS, DebouncedHighlightWriter
from .news_service import NewsNotFoundError, NewsService
from .selection_mapper import selection_from_html

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENGINES = 256


class HighlightEditor:
    """
    Per-item highlight sessions backed by NewsService.

    Engines are kept in a least-recently-used cache of ``max_engines``
    entries. An engine with a write waiting or in progress is never evicted,
    so its optimistic state is not lost before it reaches the database.
    """

    def __init__(
        self,
        news_service: NewsService,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        max_engines: int = DEFAULT_MAX_ENGINES,
    ):
        self.news_service = news_service
        self.writer = DebouncedHighlightWriter(self._persist, delay=delay)
        self.max_engines = max_engines
        self._engines: OrderedDict[int, HighlightEngine] = OrderedDict()

    def get_engine(self, news_id: int) -> HighlightEngine:
        """
        Return the engine for a news item, loading it from the database once.

        Raises:
            NewsNotFoundError: If the news item does not exist
        """
        engine = self._engines.get(news_id)
        if engine is None:
            item = self.news_service.get_news_by_id(news_id)
            if item is None:
                raise NewsNotFoundError(news_id)
            engine = HighlightEngine.from_summary(item["summary"], item["highlights"])
            self._engines[news_id] = engine
            logger.debug(
                f"Loaded {len(engine.highlights)} highlights for news {news_id}"
            )
        else:
            self._engines.move_to_end(news_id)
        self._evict()
        return engine

    def cached_ids(self) -> list[int]:
        return list(self._engines)

    def _evict(self) -> None:
        excess = len(self._engines) - self.max_engines
        if excess <= 0:
            return
        # The most recently used engine is the one being handed out
        for news_id in list(self._engines)[:-1]:
            if excess <= 0:
                break
            if self.writer.has_writes(news_id):
                continue
            del self._engines[news_id]
            excess -= 1
            logger.debug(f"Evicted highlight engine for news {news_id}")

    def get_highlights(self, news_id: int) -> list[Highlight]:
        return list(self.get_engine(news_id).highlights)

    def add_selection(
        self, news_id: int, start: int, end: int
    ) -> tuple[Highlight | None, asyncio.Task | None]:
        """
        Confirm a selection given as canonical offsets.

        Returns:
            The stored highlight covering the selection (None for an empty
            selection) and the scheduled write task (None when nothing
            changed)

        Raises:
            NewsNotFoundError: If the news item does not exist
            SelectionError: If the offsets fall outside the summary text
        """
        engine = self.get_engine(news_id)
        created = engine.confirm_selection(start, end)
        if created is None:
            return None, None
        return created, self.writer.schedule(news_id, engine.highlights)

    def add_selection_points(
        self, news_id: int, anchor: SelectionPoint, focus: SelectionPoint
    ) -> tuple[Highlight | None, asyncio.Task | None]:
        """
        Confirm a selection made over the rendered summary.

        The boundary points index the text nodes of the current rendering,
        so the rendering is rebuilt from the same state the reader sees.
        """
        engine = self.get_engine(news_id)
        selected = selection_from_html(engine.render(), anchor, focus)
        if selected is None:
            return None, None
        return self.add_selection(news_id, *selected)

    def clear(self, news_id: int) -> asyncio.Task:
        """Remove every highlight from an item and schedule the write"""
        engine = self.get_engine(news_id)
        engine.clear()
        logger.info(f"Cleared highlights for news {news_id}")
        return self.writer.schedule(news_id, engine.highlights)

    async def replace(
        self, news_id: int, highlights: Iterable[Any]
    ) -> list[Highlight]:
        """
        Replace an item's highlight set and write it immediately.

        A debounced write still waiting for this item is cancelled, and one
        already running finishes before the replacement is stored, so an
        older set can never overwrite it.
        """
        engine = self.get_engine(news_id)
        merged = engine.replace(highlights)
        await self.writer.write_now(news_id, merged)
        return merged

    def forget(self, news_id: int) -> None:
        """Drop the cached engine so the next access reloads from the database"""
        self._engines.pop(news_id, None)

    async def flush(self) -> int:
        return await self.writer.flush()

    async def _persist(self, news_id: int, highlights: list[Highlight]) -> bool:
        payload = [h.model_dump(mode="json") for h in highlights]
        updated = await asyncio.to_thread(
            self.news_service.update_highlights, news_id, payload
        )
        if not updated:
            raise NewsNotFoundError(news_id)
        return updated
