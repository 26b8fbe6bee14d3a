"""
Board synchronisation.

BoardSync keeps one owner's board consistent with the task store. Every
successful write is followed by a full reload rather than a local patch, and
when the store publishes change notifications each event triggers a reload
as well, whether it came from this board or from anyone else.

Overlapping reloads are allowed to run. A result is applied unless a reload
issued after it has already been applied; such stale results are dropped.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from todoboard.core.exceptions import StoreError
from todoboard.crud.base import TaskStore
from todoboard.schemas.board import BoardRead
from todoboard.schemas.comment import CommentRead
from todoboard.schemas.task import TaskRead, clean_text, is_creatable
from todoboard.schemas.user import UserRead
from todoboard.services.change_feed import ChangeEvent, Subscription
from todoboard.services.ordering import TaskOrdering

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SessionContext:
    """Identity of the signed-in user, passed explicitly to the board."""

    user_id: str
    user_name: str

    @classmethod
    def from_user(cls, user: UserRead) -> SessionContext:
        return cls(user_id=user.id, user_name=user.name)


class BoardSync:

    def __init__(
        self,
        store: TaskStore,
        context: SessionContext,
        *,
        reload_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.context = context
        self.ordering = TaskOrdering()
        self._reload_timeout = reload_timeout
        self._generation = 0
        self._applied = 0
        self._in_flight = 0
        self._subscriptions: list[Subscription] = []
        self._streams: list[Subscription] = []
        self._listeners: list[asyncio.Task[None]] = []
        self._reload_tasks: set[asyncio.Task[Any]] = set()
        self._started = False

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def tasks(self) -> list[TaskRead]:
        return self.ordering.tasks

    @property
    def pending(self) -> list[TaskRead]:
        return self.ordering.pending

    @property
    def completed(self) -> list[TaskRead]:
        return self.ordering.completed

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    @property
    def started(self) -> bool:
        return self._started

    def view(self, user: UserRead) -> BoardRead:
        return BoardRead(
            user=user,
            loading=self.loading,
            pending=self.pending,
            completed=self.completed,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe to changes (when the store has a feed) and load the board."""
        if self._started:
            return
        self._started = True
        feed = self.store.feed
        if feed is not None:
            self._subscriptions = [
                feed.subscribe("tasks", {"user_id": self.context.user_id}),
                feed.subscribe("comments"),
            ]
            self._listeners = [
                asyncio.create_task(self._listen(subscription))
                for subscription in self._subscriptions
            ]
        logger.info("Board started for user_id=%s", self.context.user_id)
        await self.reload()

    async def stop(self) -> None:
        was_started, self._started = self._started, False
        for subscription in [*self._subscriptions, *self._streams]:
            subscription.close()
        self._streams = []
        pending = [*self._listeners, *self._reload_tasks]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._subscriptions = []
        self._listeners = []
        self._reload_tasks.clear()
        if was_started:
            logger.info("Board stopped for user_id=%s", self.context.user_id)

    def open_stream(self) -> list[Subscription]:
        """
        Open a subscription pair for an outside consumer of this board's changes.
        The pair is closed when the board stops.
        """
        feed = self.store.feed
        if feed is None or not self._started:
            return []
        self._streams = [s for s in self._streams if not s.closed]
        pair = [
            feed.subscribe("tasks", {"user_id": self.context.user_id}),
            feed.subscribe("comments"),
        ]
        self._streams.extend(pair)
        return pair

    def owns_event(self, event: ChangeEvent) -> bool:
        """True if the change concerns one of this board's tasks."""
        if event.table == "tasks":
            return str(event.record.get("user_id")) == self.context.user_id
        return event.record.get("task_id") in self.ordering.ids

    async def _listen(self, subscription: Subscription) -> None:
        async for event in subscription:
            logger.debug(
                "Change on %s (%s); reloading board for user_id=%s",
                event.table, event.event, self.context.user_id,
            )
            self._spawn_reload()

    def _spawn_reload(self) -> None:
        task = asyncio.create_task(self.reload())
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)

    # ── Reload ────────────────────────────────────────────────────────────────

    async def reload(self) -> bool:
        """
        Re-fetch every task of the owner and replace the board.
        Returns True if this reload's result was applied.
        """
        self._generation += 1
        generation = self._generation
        self._in_flight += 1
        try:
            tasks = await asyncio.wait_for(
                self.store.load(self.context.user_id), timeout=self._reload_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "Reload timed out after %.1fs for user_id=%s",
                self._reload_timeout, self.context.user_id,
            )
            return False
        except StoreError as exc:
            logger.error("Error loading tasks for user_id=%s: %s", self.context.user_id, exc)
            return False
        finally:
            self._in_flight -= 1

        if generation < self._applied:
            logger.debug(
                "Discarding stale reload generation=%s applied=%s", generation, self._applied
            )
            return False
        self._applied = generation
        self.ordering.replace(tasks)
        return True

    async def _write(self, action: str, operation: Callable[[], Awaitable[T]]) -> T | None:
        try:
            result = await operation()
        except StoreError as exc:
            logger.error("Error %s for user_id=%s: %s", action, self.context.user_id, exc)
            return None
        await self.reload()
        return result

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def add_task(self, text: str) -> TaskRead | None:
        if not is_creatable(text):
            return None
        return await self._write(
            "adding task",
            lambda: self.store.create(self.context.user_id, clean_text(text)),
        )

    async def toggle_task(self, task_id: int) -> TaskRead | None:
        return await self._write(
            "toggling task",
            lambda: self.store.toggle(self.context.user_id, task_id),
        )

    async def delete_task(self, task_id: int) -> bool:
        deleted = await self._write(
            "deleting task",
            lambda: self.store.delete(self.context.user_id, task_id),
        )
        return bool(deleted)

    async def add_comment(self, task_id: int, text: str) -> CommentRead | None:
        if not is_creatable(text):
            return None
        return await self._write(
            "adding comment",
            lambda: self.store.add_comment(
                self.context.user_id, task_id, self.context.user_name, clean_text(text)
            ),
        )

    async def move_task(self, active_id: int, over_id: int | None) -> bool:
        """Apply a drag reorder locally and hand the new order to the store."""
        if not self.ordering.move(active_id, over_id):
            return False
        try:
            await self.store.save_order(self.context.user_id, self.ordering.ids)
        except StoreError as exc:
            logger.error("Error saving task order for user_id=%s: %s", self.context.user_id, exc)
        return True
