"""
Highlight Engine Module

This module maintains the set of highlights for one news summary and renders
the summary with those highlights applied.

All offsets are positions in the canonical summary text (see
``summary_formatter``). A stored highlight set is always:
- sorted ascending by start
- free of overlapping and touching ranges (A.end < B.start)
- free of empty ranges (start < end)
"""

import logging
from collections.abc import Iterable
from html import escape
from typing import Any

from bs4 import BeautifulSoup
from pydantic import ValidationError

from ..models.highlights import Highlight, Segment, SpanStyle, StyleSpan
from .summary_formatter import canonicalize_summary

logger = logging.getLogger(__name__)

# Nesting order for rendered tags, outermost first
_TAG_ORDER = (SpanStyle.HIGHLIGHT, SpanStyle.STRONG, SpanStyle.EMPHASIS)
_CLOSE_TAGS = {
    SpanStyle.HIGHLIGHT: "</mark>",
    SpanStyle.STRONG: "</span>",
    SpanStyle.EMPHASIS: "</span>",
}


class SelectionError(ValueError):
    """Raised when a selection does not fit inside the canonical text"""


def coerce_highlights(raw: Iterable[Any] | None) -> list[Highlight]:
    """
    Build Highlight objects from persisted data, dropping malformed entries.

    Stale stored data may contain non-numeric offsets or empty ranges; those
    entries are logged and skipped instead of raising.
    """
    highlights = []
    for item in raw or ():
        if isinstance(item, Highlight):
            highlights.append(item)
            continue
        try:
            highlights.append(Highlight.model_validate(item))
        except ValidationError as e:
            logger.warning(
                f"Dropping malformed highlight {item!r}: {e.error_count()} errors"
            )
    return highlights


def merge_highlights(
    highlights: Iterable[Any] | None, text_length: int | None = None
) -> list[Highlight]:
    """
    Merge overlapping and touching highlights into a minimal sorted cover.

    The first highlight of each merged group keeps its id, text and
    created_at; later ones only contribute their end offset.

    Args:
        highlights: Highlights in any order (Highlight objects or raw dicts)
        text_length: Length of the canonical text, if known; highlights
                     ending past it are dropped

    Returns:
        list[Highlight]: Sorted, non-overlapping, non-adjacent highlights
    """
    valid = coerce_highlights(highlights)
    if text_length is not None:
        in_range = [h for h in valid if h.end <= text_length]
        if len(in_range) != len(valid):
            logger.warning(
                f"Dropped {len(valid) - len(in_range)} highlights past end of text "
                f"(length {text_length})"
            )
        valid = in_range

    if len(valid) <= 1:
        return valid

    ordered = sorted(valid, key=lambda h: (h.start, h.end))
    merged = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if current.end >= nxt.start:
            if nxt.end > current.end:
                current = current.model_copy(update={"end": nxt.end})
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged


def build_segments(
    text: str,
    highlights: Iterable[Any] | None = (),
    style_spans: Iterable[StyleSpan] = (),
) -> list[Segment]:
    """
    Split text into maximal runs that share the same active styles.

    Highlights are merged first. Emphasis spans and highlights are walked
    together as one set of intervals over the same canonical text.
    """
    merged = merge_highlights(highlights, text_length=len(text))

    opens: dict[int, list[tuple[SpanStyle, str | None]]] = {}
    closes: dict[int, list[tuple[SpanStyle, str | None]]] = {}
    for h in merged:
        opens.setdefault(h.start, []).append((SpanStyle.HIGHLIGHT, h.id))
        closes.setdefault(h.end, []).append((SpanStyle.HIGHLIGHT, h.id))
    for span in style_spans:
        start, end = max(0, span.start), min(len(text), span.end)
        if start >= end:
            continue
        opens.setdefault(start, []).append((span.style, None))
        closes.setdefault(end, []).append((span.style, None))

    boundaries = sorted({0, len(text), *opens, *closes})
    active = {style: 0 for style in _TAG_ORDER}
    highlight_id = None
    segments: list[Segment] = []

    for position, next_position in zip(boundaries, boundaries[1:]):
        for style, _ in closes.get(position, ()):
            active[style] -= 1
            if style == SpanStyle.HIGHLIGHT:
                highlight_id = None
        for style, ident in opens.get(position, ()):
            active[style] += 1
            if style == SpanStyle.HIGHLIGHT:
                highlight_id = ident

        style = SpanStyle.NONE
        for flag, count in active.items():
            if count > 0:
                style |= flag

        chunk = text[position:next_position]
        if (
            segments
            and segments[-1].style == style
            and segments[-1].highlight_id == highlight_id
        ):
            segments[-1] = Segment(
                text=segments[-1].text + chunk, style=style, highlight_id=highlight_id
            )
        else:
            segments.append(Segment(text=chunk, style=style, highlight_id=highlight_id))

    return segments


def _open_tag(style: SpanStyle, highlight_id: str | None) -> str:
    if style == SpanStyle.HIGHLIGHT:
        return f'<mark class="highlight" data-highlight-id="{escape(highlight_id or "")}">'
    if style == SpanStyle.STRONG:
        return '<span class="summary-strong" style="color: darkgreen;">'
    return '<span class="summary-emphasis" style="color: darkred;">'


def render_segments(segments: Iterable[Segment]) -> str:
    """Render segments as HTML; each run's tags open and close inside that run."""
    parts = []
    for segment in segments:
        flags = [flag for flag in _TAG_ORDER if segment.style & flag]
        parts.extend(_open_tag(flag, segment.highlight_id) for flag in flags)
        parts.append(escape(segment.text, quote=False))
        parts.extend(_CLOSE_TAGS[flag] for flag in reversed(flags))
    return "".join(parts)


def render_highlights(text: str, highlights: Iterable[Any] | None) -> str:
    """
    Render canonical text with highlights wrapped in ``<mark>`` tags.

    Args:
        text: Canonical (marker-free) text
        highlights: Highlights over that text, merged before rendering

    Returns:
        str: HTML with the text escaped and highlighted ranges marked
    """
    return render_segments(build_segments(text, highlights))


def render_summary(raw_summary: str, highlights: Iterable[Any] | None) -> str:
    """Render a markdown-lite summary with both emphasis styling and highlights."""
    canonical = canonicalize_summary(raw_summary)
    return render_segments(
        build_segments(canonical.text, highlights, canonical.emphasis_spans)
    )


def strip_markers(html: str) -> str:
    """Return the plain text of rendered HTML, dropping every tag."""
    return BeautifulSoup(html, "html.parser").get_text()


class HighlightEngine:
    """
    Highlight state for a single news summary.

    Usage:
        engine = HighlightEngine(canonical_text, stored_highlights)
        created = engine.confirm_selection(0, 5)
        html = engine.render()
        persist(engine.highlights)
    """

    def __init__(
        self,
        text: str,
        highlights: Iterable[Any] | None = (),
        style_spans: Iterable[StyleSpan] = (),
    ):
        self.text = text
        self.style_spans = tuple(style_spans)
        self._highlights = merge_highlights(highlights, text_length=len(text))

    @classmethod
    def from_summary(
        cls, raw_summary: str, highlights: Iterable[Any] | None = ()
    ) -> "HighlightEngine":
        """Create an engine over the canonical form of a markdown-lite summary"""
        canonical = canonicalize_summary(raw_summary)
        return cls(canonical.text, highlights, canonical.emphasis_spans)

    @property
    def highlights(self) -> tuple[Highlight, ...]:
        return tuple(self._highlights)

    def confirm_selection(self, start: int, end: int) -> Highlight | None:
        """
        Add a highlight for a confirmed selection and merge it into the set.

        When the selection overlaps or touches existing highlights it is
        absorbed into them, so the returned highlight is the stored one that
        now covers the selection: it keeps the earliest highlight's id and
        text, and may be wider than the selection.

        Args:
            start: Canonical start offset
            end: Canonical end offset (exclusive)

        Returns:
            Highlight | None: The stored highlight covering the selection, or
            None for an empty selection

        Raises:
            SelectionError: If the offsets fall outside the text
        """
        if start >= end:
            logger.debug(f"Ignoring empty selection [{start}, {end})")
            return None
        if start < 0 or end > len(self.text):
            raise SelectionError(
                f"Selection [{start}, {end}) outside text of length {len(self.text)}"
            )

        highlight = Highlight(start=start, end=end, text=self.text[start:end])
        self._highlights = merge_highlights(
            [*self._highlights, highlight], text_length=len(self.text)
        )
        logger.info(
            f"Added highlight [{start}, {end}), set now has {len(self._highlights)}"
        )
        return next(
            h for h in self._highlights if h.start <= start and end <= h.end
        )

    def replace(self, highlights: Iterable[Any] | None) -> list[Highlight]:
        """Replace the whole set, merging the incoming highlights"""
        self._highlights = merge_highlights(highlights, text_length=len(self.text))
        return list(self._highlights)

    def clear(self) -> None:
        self._highlights = []

    def segments(self) -> list[Segment]:
        return build_segments(self.text, self._highlights, self.style_spans)

    def render(self) -> str:
        return render_segments(self.segments())
