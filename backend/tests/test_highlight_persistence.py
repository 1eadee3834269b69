"""
Unit tests for debounced highlight persistence.

Tests cover:
- Rapid edits to one item collapse into one trailing write
- Edits to different items are written independently
- Persist failures surface on the returned task
- Flushing waiting writes on demand
- Cancelling waiting writes without touching writes already running
- Writes for one item reaching storage in the order they fired
"""

import asyncio
import logging
import re

import pytest

from newsdesk.models.highlights import Highlight
from newsdesk.services.highlight_persistence import DebouncedHighlightWriter


class RecordingPersist:
    """Persist callback that records every write"""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def __call__(self, news_id, highlights):
        self.calls.append((news_id, [(h.start, h.end) for h in highlights]))
        if self.fail:
            raise RuntimeError("database unavailable")
        return True


def highlights(*ranges):
    return [Highlight(start=start, end=end) for start, end in ranges]


class TestDebounce:
    """Test coalescing of writes"""

    @pytest.mark.asyncio
    async def test_rapid_edits_write_once(self):
        """Test that three quick edits produce one write of the last state"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=0.05)

        first = writer.schedule(1, highlights((0, 2)))
        second = writer.schedule(1, highlights((0, 2), (4, 6)))
        last = writer.schedule(1, highlights((0, 6)))

        assert await last is True
        assert first.cancelled()
        assert second.cancelled()
        assert persist.calls == [(1, [(0, 6)])]

    @pytest.mark.asyncio
    async def test_write_waits_for_delay(self):
        """Test that nothing is written before the delay elapses"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=0.2)

        task = writer.schedule(1, highlights((0, 2)))
        await asyncio.sleep(0.05)

        assert persist.calls == []
        assert writer.is_pending(1)

        await task
        assert persist.calls == [(1, [(0, 2)])]
        assert not writer.is_pending(1)

    @pytest.mark.asyncio
    async def test_items_written_independently(self):
        """Test that an edit to one item does not cancel another item's write"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=0.05)

        task_a = writer.schedule(1, highlights((0, 3)))
        task_b = writer.schedule(2, highlights((5, 9)))
        assert sorted(writer.pending_ids()) == [1, 2]

        await asyncio.gather(task_a, task_b)

        assert sorted(persist.calls) == [(1, [(0, 3)]), (2, [(5, 9)])]
        assert writer.pending_ids() == []

    @pytest.mark.asyncio
    async def test_failure_surfaces_on_task(self):
        """Test that a persist error is raised from the task"""
        writer = DebouncedHighlightWriter(RecordingPersist(fail=True), delay=0.01)

        task = writer.schedule(1, highlights((0, 3)))

        with pytest.raises(RuntimeError, match="database unavailable"):
            await task
        assert not writer.is_pending(1)

    @pytest.mark.asyncio
    async def test_write_logs_time_since_scheduling(self, caplog):
        """Test that a write reports how long after scheduling it started"""
        writer = DebouncedHighlightWriter(RecordingPersist(), delay=0.05)

        with caplog.at_level(
            logging.DEBUG, logger="newsdesk.services.highlight_persistence"
        ):
            await writer.schedule(1, highlights((0, 2)))

        waits = []
        for record in caplog.records:
            match = re.search(r"(\d+\.\d+)s after scheduling", record.getMessage())
            if match:
                waits.append(float(match.group(1)))
        assert len(waits) == 1
        assert waits[0] >= 0.04


class TestFlushAndCancel:
    """Test flush and cancel"""

    @pytest.mark.asyncio
    async def test_flush_writes_immediately(self):
        """Test that flush runs waiting writes without the delay"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=30)

        task_a = writer.schedule(1, highlights((0, 3)))
        writer.schedule(2, highlights((1, 2)))

        assert await asyncio.wait_for(writer.flush(), timeout=2) == 2
        assert task_a.done() and task_a.result() is True
        assert len(persist.calls) == 2

    @pytest.mark.asyncio
    async def test_flush_single_item(self):
        """Test that flushing one item leaves the others waiting"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=30)

        writer.schedule(1, highlights((0, 3)))
        waiting = writer.schedule(2, highlights((1, 2)))

        assert await asyncio.wait_for(writer.flush(1), timeout=2) == 1
        assert persist.calls == [(1, [(0, 3)])]
        assert writer.is_pending(2)

        waiting.cancel()

    @pytest.mark.asyncio
    async def test_flush_counts_failures(self):
        """Test that failed writes are not counted as flushed"""
        writer = DebouncedHighlightWriter(RecordingPersist(fail=True), delay=30)
        task = writer.schedule(1, highlights((0, 3)))

        assert await writer.flush() == 0
        assert isinstance(task.exception(), RuntimeError)

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self):
        """Test that flushing an idle writer is a no-op"""
        writer = DebouncedHighlightWriter(RecordingPersist(), delay=0.01)
        assert await writer.flush() == 0

    @pytest.mark.asyncio
    async def test_cancel_waiting_write(self):
        """Test that a waiting write can be cancelled"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=30)

        task = writer.schedule(1, highlights((0, 3)))

        assert writer.cancel(1) is True
        assert writer.cancel(1) is False
        await asyncio.sleep(0)
        assert task.cancelled()
        assert persist.calls == []

    @pytest.mark.asyncio
    async def test_running_write_not_cancelled(self):
        """Test that a new edit does not cancel a write that already started"""
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def slow_persist(news_id, items):
            calls.append([(h.start, h.end) for h in items])
            started.set()
            await release.wait()
            return True

        writer = DebouncedHighlightWriter(slow_persist, delay=0.01)

        running = writer.schedule(1, highlights((0, 3)))
        await asyncio.wait_for(started.wait(), timeout=2)

        assert not writer.is_pending(1)
        assert writer.cancel(1) is False

        following = writer.schedule(1, highlights((0, 5)))
        release.set()

        assert await running is True
        assert await following is True
        assert calls == [[(0, 3)], [(0, 5)]]


class TestWriteOrdering:
    """Test that writes for one item reach storage in the order they fired"""

    @pytest.mark.asyncio
    async def test_later_write_waits_for_running_write(self):
        """Test that a write firing during a slow write is stored after it"""
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def slow_first_persist(news_id, items):
            calls.append([(h.start, h.end) for h in items])
            if len(calls) == 1:
                started.set()
                await release.wait()
            return True

        writer = DebouncedHighlightWriter(slow_first_persist, delay=0.01)

        running = writer.schedule(1, highlights((0, 3)))
        await asyncio.wait_for(started.wait(), timeout=2)
        following = writer.schedule(1, highlights((6, 9)))
        await asyncio.sleep(0.05)

        # The second timer has elapsed but its write is held back
        assert calls == [[(0, 3)]]
        assert writer.has_writes(1)

        release.set()
        assert await running is True
        assert await following is True
        assert calls == [[(0, 3)], [(6, 9)]]
        assert not writer.has_writes(1)

    @pytest.mark.asyncio
    async def test_write_now_skips_delay(self):
        """Test that write_now cancels the waiting write and stores at once"""
        persist = RecordingPersist()
        writer = DebouncedHighlightWriter(persist, delay=30)

        waiting = writer.schedule(1, highlights((0, 3)))
        result = await asyncio.wait_for(
            writer.write_now(1, highlights((0, 5))), timeout=2
        )

        assert result is True
        assert waiting.cancelled()
        assert persist.calls == [(1, [(0, 5)])]
        assert not writer.has_writes(1)

    @pytest.mark.asyncio
    async def test_write_now_stored_after_running_write(self):
        """Test that write_now waits for a write already in progress"""
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def slow_first_persist(news_id, items):
            calls.append([(h.start, h.end) for h in items])
            if len(calls) == 1:
                started.set()
                await release.wait()
            return True

        writer = DebouncedHighlightWriter(slow_first_persist, delay=0.01)

        running = writer.schedule(1, highlights((0, 3)))
        await asyncio.wait_for(started.wait(), timeout=2)
        immediate = asyncio.create_task(writer.write_now(1, highlights((4, 8))))
        await asyncio.sleep(0.02)

        assert not immediate.done()
        assert calls == [[(0, 3)]]

        release.set()
        assert await asyncio.wait_for(immediate, timeout=2) is True
        assert running.result() is True
        assert calls == [[(0, 3)], [(4, 8)]]
