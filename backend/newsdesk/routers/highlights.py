from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..dependencies import get_highlight_editor
from ..models.highlights import SelectionPoint
from ..services.highlight_editor import HighlightEditor
from ..services.highlight_engine import SelectionError
from ..services.news_service import NewsNotFoundError

router = APIRouter(prefix="/news", tags=["highlights"])


class HighlightsUpdateRequest(BaseModel):
    highlights: List[Dict[str, Any]]


class SelectionRequest(BaseModel):
    # Canonical offsets...
    start: Optional[int] = None
    end: Optional[int] = None
    # ...or boundary points over the rendered summary's text nodes
    anchor: Optional[SelectionPoint] = None
    focus: Optional[SelectionPoint] = None


def _is_offset(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_highlight_payload(highlights: List[Dict[str, Any]]) -> None:
    """
    Check that each highlight has an id, integer offsets and captured text.

    Raises:
        HTTPException: 400 if any entry is malformed
    """
    for highlight in highlights:
        if (
            not highlight.get("id")
            or not _is_offset(highlight.get("start"))
            or not _is_offset(highlight.get("end"))
            or not highlight.get("text")
        ):
            raise HTTPException(status_code=400, detail="Invalid highlight data structure")


def _dump(highlights) -> List[Dict[str, Any]]:
    return [h.model_dump(mode="json") for h in highlights]


@router.get("/{news_id}/highlights", response_model=Dict[str, Any])
async def get_highlights(
    news_id: int, editor: HighlightEditor = Depends(get_highlight_editor)
):
    """Get the current highlight set of a news item."""
    try:
        return {"highlights": _dump(editor.get_highlights(news_id))}
    except NewsNotFoundError:
        raise HTTPException(status_code=404, detail="News not found")
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error fetching highlights: {str(e)}"
        )


@router.put("/{news_id}/highlights", response_model=Dict[str, Any])
async def replace_highlights(
    news_id: int,
    payload: HighlightsUpdateRequest,
    editor: HighlightEditor = Depends(get_highlight_editor),
):
    """
    Replace the highlight set of a news item.

    The set is merged before it is stored and written immediately.
    """
    validate_highlight_payload(payload.highlights)
    try:
        merged = await editor.replace(news_id, payload.highlights)
        return {
            "message": "Highlights updated successfully",
            "highlights": _dump(merged),
        }
    except NewsNotFoundError:
        raise HTTPException(status_code=404, detail="News not found")
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error updating highlights: {str(e)}"
        )


@router.post("/{news_id}/highlights", response_model=Dict[str, Any])
async def add_highlight(
    news_id: int,
    selection: SelectionRequest,
    editor: HighlightEditor = Depends(get_highlight_editor),
):
    """
    Confirm a selection as a new highlight.

    The selection is either canonical offsets (start, end) or two boundary
    points over the text nodes of the rendered summary. An empty selection
    creates nothing. A selection that overlaps or touches stored highlights
    merges with them, and "created" is the stored highlight covering it. The
    write to the database is debounced.
    """
    has_offsets = selection.start is not None and selection.end is not None
    has_points = selection.anchor is not None and selection.focus is not None
    if not has_offsets and not has_points:
        raise HTTPException(
            status_code=400,
            detail="Either start and end or anchor and focus must be provided",
        )

    try:
        if has_offsets:
            created, task = editor.add_selection(news_id, selection.start, selection.end)
        else:
            created, task = editor.add_selection_points(
                news_id, selection.anchor, selection.focus
            )
        return {
            "created": created.model_dump(mode="json") if created else None,
            "highlights": _dump(editor.get_highlights(news_id)),
            "pending_write": task is not None,
        }
    except NewsNotFoundError:
        raise HTTPException(status_code=404, detail="News not found")
    except SelectionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error creating highlight: {str(e)}"
        )


@router.delete("/{news_id}/highlights", response_model=Dict[str, Any])
async def clear_highlights(
    news_id: int, editor: HighlightEditor = Depends(get_highlight_editor)
):
    """Remove every highlight from a news item."""
    try:
        editor.clear(news_id)
        return {"message": "Highlights cleared", "highlights": []}
    except NewsNotFoundError:
        raise HTTPException(status_code=404, detail="News not found")
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error clearing highlights: {str(e)}"
        )


@router.get("/{news_id}/render", response_model=Dict[str, Any])
async def render_news_summary(
    news_id: int, editor: HighlightEditor = Depends(get_highlight_editor)
):
    """
    Render the summary of a news item with emphasis and highlights.

    Returns:
        Dict: canonical text, HTML, styled segments and the highlight set
    """
    try:
        engine = editor.get_engine(news_id)
        segments = engine.segments()
        return {
            "text": engine.text,
            "html": engine.render(),
            "segments": [s.model_dump(mode="json") for s in segments],
            "highlights": _dump(engine.highlights),
        }
    except NewsNotFoundError:
        raise HTTPException(status_code=404, detail="News not found")
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error rendering summary: {str(e)}"
        )
