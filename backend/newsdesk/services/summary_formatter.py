"""
Summary Formatter Module

Converts a markdown-lite news summary into a canonical plain-text buffer.

Summaries may contain two inline markers:
- ``**strong**`` (matched first, over the raw summary)
- ``*emphasis*`` (matched over what remains once strong markers are gone)

Both passes are applied once, up front. Every styled range and every user
highlight is expressed in offsets of the resulting canonical text, so the
renderer can walk a single set of intervals instead of substituting markup
into already-annotated HTML.
"""

import logging
import re
from dataclasses import dataclass

from ..models.highlights import SpanStyle, StyleSpan

logger = logging.getLogger(__name__)

_STRONG_PATTERN = re.compile(r"\*\*(.*?)\*\*")
_EMPHASIS_PATTERN = re.compile(r"\*(.*?)\*")


@dataclass(frozen=True)
class MarkerRun:
    """A run of marker characters removed from the raw summary"""

    kind: SpanStyle
    raw_position: int  # Index of the run in the raw summary
    canonical_position: int  # Index in the canonical text where the run was removed
    length: int


@dataclass(frozen=True)
class CanonicalSummary:
    """A summary with all inline markers stripped"""

    raw: str
    text: str
    emphasis_spans: tuple[StyleSpan, ...]
    marker_runs: tuple[MarkerRun, ...]


@dataclass
class _PassResult:
    text: str
    origin: list[int]  # Raw index of every character in ``text``
    new_index: list[int]  # Position in ``text`` of every input index (len + 1 entries)
    spans: list[tuple[int, int]]
    runs: list[tuple[int, int, int]]  # (raw_position, position, length)


def _strip_pass(
    text: str, origin: list[int], pattern: re.Pattern[str], marker_len: int
) -> _PassResult:
    """Remove one kind of marker pair from ``text`` and record where it was."""
    parts: list[str] = []
    out_origin: list[int] = []
    new_index: list[int] = []
    spans: list[tuple[int, int]] = []
    runs: list[tuple[int, int, int]] = []
    last = 0

    def keep(start: int, end: int) -> None:
        for i in range(start, end):
            new_index.append(len(out_origin))
            out_origin.append(origin[i])
        parts.append(text[start:end])

    def drop(start: int, end: int) -> None:
        position = len(out_origin)
        runs.append((origin[start], position, end - start))
        new_index.extend([position] * (end - start))

    for match in pattern.finditer(text):
        keep(last, match.start())
        drop(match.start(), match.start() + marker_len)
        span_start = len(out_origin)
        keep(match.start(1), match.end(1))
        span_end = len(out_origin)
        drop(match.end(1), match.end())
        if span_end > span_start:
            spans.append((span_start, span_end))
        last = match.end()

    keep(last, len(text))
    new_index.append(len(out_origin))
    return _PassResult("".join(parts), out_origin, new_index, spans, runs)


def canonicalize_summary(raw: str) -> CanonicalSummary:
    """
    Strip markdown-lite markers from a summary, exactly once.

    Args:
        raw: Summary text as stored, possibly containing ``**`` / ``*`` markers

    Returns:
        CanonicalSummary with the plain text, the emphasis spans and the
        removed marker runs, all positioned in canonical coordinates
    """
    raw = raw or ""
    strong = _strip_pass(raw, list(range(len(raw))), _STRONG_PATTERN, 2)
    emphasis = _strip_pass(strong.text, strong.origin, _EMPHASIS_PATTERN, 1)

    # Strong spans were found before emphasis markers were removed
    to_canonical = emphasis.new_index
    spans = [
        StyleSpan(start=to_canonical[s], end=to_canonical[e], style=SpanStyle.STRONG)
        for s, e in strong.spans
    ]
    spans.extend(
        StyleSpan(start=s, end=e, style=SpanStyle.EMPHASIS) for s, e in emphasis.spans
    )
    spans = [span for span in spans if span.start < span.end]
    spans.sort(key=lambda span: (span.start, span.end, int(span.style)))

    runs = [
        MarkerRun(SpanStyle.STRONG, raw_pos, to_canonical[pos], length)
        for raw_pos, pos, length in strong.runs
    ]
    runs.extend(
        MarkerRun(SpanStyle.EMPHASIS, raw_pos, pos, length)
        for raw_pos, pos, length in emphasis.runs
    )
    runs.sort(key=lambda run: run.raw_position)

    if runs:
        logger.debug(
            f"Stripped {len(runs)} marker runs, {len(raw)} -> {len(emphasis.text)} chars"
        )
    return CanonicalSummary(
        raw=raw,
        text=emphasis.text,
        emphasis_spans=tuple(spans),
        marker_runs=tuple(runs),
    )


def canonical_to_raw(summary: CanonicalSummary, position: int) -> int:
    """
    Map a canonical offset back to an offset in the raw summary.

    Positions that coincide with a removed marker run map to just after
    that run, so the raw character at the result is the same character.
    """
    if position < 0 or position > len(summary.text):
        raise ValueError(f"Position {position} outside canonical text")
    shift = 0
    for run in summary.marker_runs:
        if run.canonical_position > position:
            break
        shift += run.length
    return position + shift
