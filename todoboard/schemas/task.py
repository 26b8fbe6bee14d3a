"""
Task Pydantic schemas.
TaskRead is the in-memory task entity shared by both storage backends.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from todoboard.schemas.comment import CommentRead


def clean_text(text: str | None) -> str:
    return (text or "").strip()


def is_creatable(text: str | None) -> bool:
    """A task or comment may only be created from text that is non-empty once trimmed."""
    return len(clean_text(text)) > 0


# ── Create ────────────────────────────────────────────────────────────────────

class TaskCreate(BaseModel):
    # Blank text is accepted here and dropped as a no-op by the board.
    text: str = Field(max_length=10000)


# ── Reorder ───────────────────────────────────────────────────────────────────

class TaskReorder(BaseModel):
    active_id: int
    over_id: int | None = None


# ── Read ──────────────────────────────────────────────────────────────────────

class TaskRead(BaseModel):
    id: int
    owner_id: str
    text: str
    completed: bool = False
    comments: list[CommentRead] = Field(default_factory=list)
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("comments")
    @classmethod
    def order_comments(cls, v: list[CommentRead]) -> list[CommentRead]:
        return sorted(v, key=lambda c: c.created_at)
