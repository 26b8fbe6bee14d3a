"""
Storage interfaces shared by the local and remote backends.

Every operation is a coroutine so the board can treat both backends alike;
the local backend simply never suspends. Validation rejections and unknown
ids are no-ops (None / False). Round-trip failures raise StoreError.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from todoboard.schemas.comment import CommentRead
from todoboard.schemas.task import TaskRead
from todoboard.schemas.user import UserRead
from todoboard.services.change_feed import ChangeFeed


class TaskStore(ABC):
    """Tasks and their comments, always scoped to one owner."""

    #: Change notifications for this store, or None when it has none.
    feed: ChangeFeed | None = None

    @abstractmethod
    async def load(self, owner_id: str) -> list[TaskRead]:
        """Return every task of the owner with comments in creation order."""

    @abstractmethod
    async def create(self, owner_id: str, text: str) -> TaskRead | None:
        """Create a pending task from trimmed text; None if the text is blank."""

    @abstractmethod
    async def toggle(self, owner_id: str, task_id: int) -> TaskRead | None:
        """Flip completion of one task; None if the owner has no such task."""

    @abstractmethod
    async def delete(self, owner_id: str, task_id: int) -> bool:
        """Remove one task and its comments; False if there was nothing to delete."""

    @abstractmethod
    async def add_comment(
        self, owner_id: str, task_id: int, author_name: str, text: str
    ) -> CommentRead | None:
        """Append a comment; None if the text is blank or the task is absent."""

    async def save_order(self, owner_id: str, ordered_ids: Sequence[int]) -> None:
        """Persist a manual ordering. Stores without a position concept ignore it."""
        return None

    async def close(self) -> None:
        return None


class UserDirectory(ABC):

    @abstractmethod
    async def list_users(self) -> list[UserRead]:
        ...

    @abstractmethod
    async def get(self, user_id: str) -> UserRead | None:
        ...

    @abstractmethod
    async def get_by_email(self, email: str) -> UserRead | None:
        ...

    @abstractmethod
    async def create(self, name: str, email: str) -> UserRead:
        ...
