"""
Highlight Type Models

Pydantic models for user highlights over a news summary. Offsets are
character positions in the canonical summary text (markdown-lite markers
already stripped), half-open ``[start, end)``.
"""

import uuid
from datetime import datetime, timezone
from enum import IntFlag

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)


def new_highlight_id() -> str:
    """Generate a unique highlight ID"""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Highlight(BaseModel):
    """A highlighted range of canonical summary text"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_highlight_id, min_length=1)
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    # Captured at creation time; rendering always re-slices the live text
    text: str = ""
    created_at: datetime = Field(
        default_factory=utc_now,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )

    @model_validator(mode="after")
    def check_range(self) -> "Highlight":
        if self.start >= self.end:
            raise ValueError(
                f"Highlight start ({self.start}) must be less than end ({self.end})"
            )
        return self


class SpanStyle(IntFlag):
    """Styles that can be active on a rendered run of text"""

    NONE = 0
    EMPHASIS = 1
    STRONG = 2
    HIGHLIGHT = 4


class StyleSpan(BaseModel):
    """A styled range of canonical text (markdown emphasis or highlight)"""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    style: SpanStyle


class Segment(BaseModel):
    """A maximal run of text sharing one set of active styles"""

    text: str
    style: SpanStyle = SpanStyle.NONE
    highlight_id: str | None = None

    @computed_field
    @property
    def is_highlighted(self) -> bool:
        return bool(self.style & SpanStyle.HIGHLIGHT)


class SelectionPoint(BaseModel):
    """A selection boundary: an index into the rendered text nodes and an offset inside it"""

    node: int = Field(ge=0)
    offset: int = Field(ge=0)
