"""
Highlight Persistence Module

Debounced writes of highlight sets. Rapid edits to one news item collapse
into a single trailing write: every new edit within the delay window resets
the timer, and only the last scheduled write runs. Each item has its own
slot, so edits to different items never cancel each other.

A write that has already started is left to finish; only writes still
waiting on their timer are cancelled. Writes for one item run one at a
time in the order their timers fired, so the last write to start is
always the last to reach storage.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models.highlights import Highlight

logger = logging.getLogger(__name__)

PersistCallback = Callable[[int, list[Highlight]], Awaitable[Any]]

DEFAULT_DEBOUNCE_SECONDS = 0.8


@dataclass
class PendingWrite:
    """A scheduled highlight write for one news item"""

    news_id: int
    highlights: list[Highlight]
    scheduled_at: datetime = field(default_factory=datetime.now)
    task: asyncio.Task | None = None
    wake: asyncio.Event = field(default_factory=asyncio.Event)
    fired: bool = False  # True once the timer elapsed and the write started


class DebouncedHighlightWriter:
    """
    Coalesce highlight writes per news item.

    Usage:
        writer = DebouncedHighlightWriter(persist, delay=0.8)
        task = writer.schedule(news_id, engine.highlights)
        ...
        await writer.flush()  # on shutdown
    """

    def __init__(
        self, persist: PersistCallback, delay: float = DEFAULT_DEBOUNCE_SECONDS
    ):
        self._persist = persist
        self.delay = delay
        self._pending: dict[int, PendingWrite] = {}
        # Last write task to fire for each item; the next one waits for it
        self._running: dict[int, asyncio.Task] = {}

    def schedule(self, news_id: int, highlights: Sequence[Highlight]) -> asyncio.Task:
        """
        Schedule a write of ``highlights`` after the debounce delay.

        Any write for the same item that is still waiting is cancelled.

        Args:
            news_id: The news item the highlights belong to
            highlights: The full highlight set to store

        Returns:
            asyncio.Task: Resolves with the persist result, raises the
            persist error, or ends cancelled if superseded
        """
        self.cancel(news_id)

        pending = PendingWrite(news_id=news_id, highlights=list(highlights))
        pending.task = asyncio.create_task(self._write_later(pending))
        pending.task.add_done_callback(
            lambda task, pending=pending: self._on_done(pending, task)
        )
        self._pending[news_id] = pending
        logger.debug(
            f"Scheduled highlight write for news {news_id} in {self.delay:.2f}s"
        )
        return pending.task

    def cancel(self, news_id: int) -> bool:
        """
        Cancel the write waiting on its timer for an item.

        Returns:
            True if a waiting write was cancelled, False otherwise
        """
        pending = self._pending.get(news_id)
        if pending is None or pending.fired or pending.task is None:
            return False
        if pending.task.done():
            return False

        pending.task.cancel()
        del self._pending[news_id]
        logger.debug(f"Cancelled superseded highlight write for news {news_id}")
        return True

    async def write_now(self, news_id: int, highlights: Sequence[Highlight]) -> Any:
        """
        Write ``highlights`` without waiting for the debounce delay.

        A waiting write for the item is cancelled; a write already running
        finishes first, so this one is stored last.
        """
        task = self.schedule(news_id, highlights)
        self._pending[news_id].wake.set()
        return await task

    def has_writes(self, news_id: int) -> bool:
        """Check whether an item has a write waiting or in progress"""
        return news_id in self._pending or news_id in self._running

    def is_pending(self, news_id: int) -> bool:
        """Check whether an item has a write waiting on its timer"""
        pending = self._pending.get(news_id)
        return pending is not None and not pending.fired

    def pending_ids(self) -> list[int]:
        return [news_id for news_id, p in self._pending.items() if not p.fired]

    async def flush(self, news_id: int | None = None) -> int:
        """
        Run waiting writes now instead of after their delay.

        Args:
            news_id: Only flush this item; None flushes every item

        Returns:
            Number of writes that completed successfully
        """
        if news_id is not None:
            pending = [self._pending[news_id]] if news_id in self._pending else []
        else:
            pending = list(self._pending.values())

        for item in pending:
            item.wake.set()

        results = await asyncio.gather(
            *(item.task for item in pending if item.task is not None),
            return_exceptions=True,
        )
        succeeded = sum(1 for r in results if not isinstance(r, BaseException))
        if pending:
            logger.info(f"Flushed {succeeded}/{len(pending)} pending highlight writes")
        return succeeded

    async def _write_later(self, pending: PendingWrite) -> Any:
        try:
            await asyncio.wait_for(pending.wake.wait(), timeout=self.delay)
        except asyncio.TimeoutError:
            pass
        pending.fired = True
        logger.debug(
            f"Writing highlights for news {pending.news_id} "
            f"{(datetime.now() - pending.scheduled_at).total_seconds():.3f}s after scheduling"
        )

        current = asyncio.current_task()
        previous = self._running.get(pending.news_id)
        self._running[pending.news_id] = current
        try:
            if previous is not None and not previous.done():
                # Outcome of the earlier write is reported on its own task
                await asyncio.wait([previous])
            return await self._write(pending.news_id, pending.highlights)
        finally:
            if self._running.get(pending.news_id) is current:
                del self._running[pending.news_id]

    async def _write(self, news_id: int, highlights: list[Highlight]) -> Any:
        try:
            result = await self._persist(news_id, highlights)
        except Exception as e:
            logger.error(f"Failed to persist highlights for news {news_id}: {e}")
            raise
        logger.info(f"Persisted {len(highlights)} highlights for news {news_id}")
        return result

    def _on_done(self, pending: PendingWrite, task: asyncio.Task) -> None:
        if self._pending.get(pending.news_id) is pending:
            del self._pending[pending.news_id]
        # Failures were logged in _write; mark them retrieved for fire-and-forget callers
        if not task.cancelled():
            task.exception()
