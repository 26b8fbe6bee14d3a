"""
Remote backend: tasks, comments and users in a relational database.

All queries run through the async SQLAlchemy ORM, one session per operation.
Each committed write is announced on the store's ChangeFeed as a row-level
change event. Task order is creation order; there is no position column.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from todoboard.core.exceptions import DuplicateEmailError, StoreError
from todoboard.crud.base import TaskStore, UserDirectory
from todoboard.models.comment import Comment
from todoboard.models.task import Task
from todoboard.models.user import User
from todoboard.schemas.comment import CommentRead
from todoboard.schemas.task import TaskRead, clean_text, is_creatable
from todoboard.schemas.user import UserRead
from todoboard.services.change_feed import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)


class _SessionMixin:
    _session_factory: async_sessionmaker[AsyncSession]

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and maps failures to StoreError."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Store operation %s failed: %s", operation, exc)
                raise StoreError(operation, exc) from exc


def _to_task(row: Task, comments: list[CommentRead]) -> TaskRead:
    return TaskRead(
        id=row.id,
        owner_id=row.user_id,
        text=row.text,
        completed=row.completed,
        comments=comments,
        created_at=row.created_at,
    )


def _task_record(row: Task) -> dict:
    return {"id": row.id, "user_id": row.user_id, "text": row.text, "completed": row.completed}


class RemoteTaskStore(_SessionMixin, TaskStore):

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.feed = feed if feed is not None else ChangeFeed()

    def _notify(self, table: str, event: str, record: dict) -> None:
        self.feed.publish(ChangeEvent(table=table, event=event, record=record))  # type: ignore[arg-type]

    async def _query_comments(self, task_id: int) -> list[CommentRead]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Comment)
                .where(Comment.task_id == task_id)
                .order_by(Comment.created_at.asc(), Comment.id.asc())
            )
            return [CommentRead.model_validate(c) for c in result.scalars().all()]

    async def _load_comments(self, task_id: int) -> list[CommentRead]:
        """Comments for one task; a failed query degrades to an empty list."""
        try:
            return await self._query_comments(task_id)
        except SQLAlchemyError as exc:
            logger.error("Error loading comments for task_id=%s: %s", task_id, exc)
            return []

    # ── TaskStore ─────────────────────────────────────────────────────────────

    async def load(self, owner_id: str) -> list[TaskRead]:
        async with self._transaction("load") as session:
            result = await session.execute(
                select(Task)
                .where(Task.user_id == owner_id)
                .order_by(Task.created_at.asc(), Task.id.asc())
            )
            rows = list(result.scalars().all())

        # Comment queries run concurrently, one session each.
        comment_lists = await asyncio.gather(*(self._load_comments(row.id) for row in rows))
        return [_to_task(row, comments) for row, comments in zip(rows, comment_lists)]

    async def create(self, owner_id: str, text: str) -> TaskRead | None:
        if not is_creatable(text):
            return None
        async with self._transaction("create") as session:
            row = Task(user_id=owner_id, text=clean_text(text), completed=False)
            session.add(row)
            await session.flush()
            await session.refresh(row)
        self._notify("tasks", "INSERT", _task_record(row))
        return _to_task(row, [])

    async def toggle(self, owner_id: str, task_id: int) -> TaskRead | None:
        async with self._transaction("toggle") as session:
            # One UPDATE; the flip is evaluated by the database.
            result = await session.execute(
                update(Task)
                .where(Task.id == task_id, Task.user_id == owner_id)
                .values(completed=~Task.completed)
                .returning(Task)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
        self._notify("tasks", "UPDATE", _task_record(row))
        return _to_task(row, [])

    async def delete(self, owner_id: str, task_id: int) -> bool:
        async with self._transaction("delete") as session:
            result = await session.execute(
                select(Task)
                .options(selectinload(Task.comments))
                .where(Task.id == task_id, Task.user_id == owner_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return False
            await session.delete(row)
        self._notify("tasks", "DELETE", {"id": task_id, "user_id": owner_id})
        return True

    async def add_comment(
        self, owner_id: str, task_id: int, author_name: str, text: str
    ) -> CommentRead | None:
        if not is_creatable(text):
            return None
        async with self._transaction("add_comment") as session:
            result = await session.execute(
                select(Task.id).where(Task.id == task_id, Task.user_id == owner_id)
            )
            if result.scalar_one_or_none() is None:
                return None
            row = Comment(task_id=task_id, author_name=author_name, text=clean_text(text))
            session.add(row)
            await session.flush()
            await session.refresh(row)
        comment = CommentRead.model_validate(row)
        self._notify(
            "comments",
            "INSERT",
            {"id": comment.id, "task_id": task_id, "author_name": author_name},
        )
        return comment


class RemoteUserDirectory(_SessionMixin, UserDirectory):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_users(self) -> list[UserRead]:
        async with self._transaction("list_users") as session:
            result = await session.execute(
                select(User).order_by(User.created_at.asc(), User.name.asc())
            )
            return [UserRead.model_validate(u) for u in result.scalars().all()]

    async def get(self, user_id: str) -> UserRead | None:
        async with self._transaction("get_user") as session:
            result = await session.execute(select(User).where(User.id == user_id))
            user = result.scalar_one_or_none()
            return UserRead.model_validate(user) if user is not None else None

    async def get_by_email(self, email: str) -> UserRead | None:
        async with self._transaction("get_user_by_email") as session:
            result = await session.execute(
                select(User)
                .where(func.lower(User.email) == email.strip().lower())
                .order_by(User.created_at.asc())
            )
            user = result.scalars().first()
            return UserRead.model_validate(user) if user is not None else None

    async def create(self, name: str, email: str) -> UserRead:
        try:
            async with self._transaction("create_user") as session:
                user = User(name=name, email=email)
                session.add(user)
                await session.flush()
                await session.refresh(user)
        except StoreError as exc:
            if isinstance(exc.cause, IntegrityError):
                raise DuplicateEmailError("create_user", exc.cause) from exc
            raise
        logger.info("Registered user id=%s", user.id)
        return UserRead.model_validate(user)
