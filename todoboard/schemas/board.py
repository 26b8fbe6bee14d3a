"""
Board view schema: the current owner's tasks split by completion.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from todoboard.schemas.task import TaskRead
from todoboard.schemas.user import UserRead


class BoardRead(BaseModel):
    user: UserRead
    loading: bool = False
    pending: list[TaskRead] = Field(default_factory=list)
    completed: list[TaskRead] = Field(default_factory=list)
