"""
Selection Mapper Module

Maps a text selection made inside a rendered summary back to canonical
offsets. A selection boundary is given as (text node index, offset within
that node), the same shape a browser Range reports. Only text-node
characters are counted; markup added for highlights and emphasis
contributes nothing to the offset.
"""

import logging

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString

from ..models.highlights import SelectionPoint
from .highlight_engine import SelectionError

logger = logging.getLogger(__name__)


def text_nodes(html: str) -> list[str]:
    """
    List the text nodes of rendered HTML in document order.

    Args:
        html: Markup produced by the highlight renderer

    Returns:
        list[str]: Text content of each text node
    """
    soup = BeautifulSoup(html, "html.parser")
    return [
        str(node)
        for node in soup.descendants
        if isinstance(node, NavigableString) and not isinstance(node, Comment)
    ]


def point_to_offset(nodes: list[str], point: SelectionPoint) -> int:
    """
    Convert one selection boundary to a canonical offset.

    Raises:
        SelectionError: If the node index or offset is outside the rendered text
    """
    if point.node >= len(nodes):
        # A caret at the very end of the container is reported past the last node
        if point.node == len(nodes) and point.offset == 0:
            return sum(len(node) for node in nodes)
        raise SelectionError(
            f"Text node {point.node} does not exist ({len(nodes)} nodes)"
        )
    if point.offset > len(nodes[point.node]):
        raise SelectionError(
            f"Offset {point.offset} past end of text node {point.node} "
            f"(length {len(nodes[point.node])})"
        )
    return sum(len(node) for node in nodes[: point.node]) + point.offset


def selection_to_range(
    nodes: list[str], anchor: SelectionPoint, focus: SelectionPoint
) -> tuple[int, int] | None:
    """
    Compute the canonical [start, end) range covered by a selection.

    Backwards selections (focus before anchor) are normalised. The selected
    text is not trimmed, so the range matches the raw selection exactly.

    Returns:
        tuple[int, int] | None: The range, or None for an empty selection
    """
    first = point_to_offset(nodes, anchor)
    second = point_to_offset(nodes, focus)
    start, end = min(first, second), max(first, second)
    if start == end:
        logger.debug(f"Empty selection at offset {start}")
        return None
    return start, end


def selection_from_html(
    html: str, anchor: SelectionPoint, focus: SelectionPoint
) -> tuple[int, int] | None:
    """Map a selection over rendered HTML to canonical offsets"""
    return selection_to_range(text_nodes(html), anchor, focus)
