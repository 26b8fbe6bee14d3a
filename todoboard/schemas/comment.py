"""
Comment Pydantic schemas.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CommentCreate(BaseModel):
    text: str = Field(max_length=10000)


class CommentRead(BaseModel):
    id: int
    task_id: int | None = None
    author_name: str
    text: str
    created_at: datetime

    model_config = {"from_attributes": True}
