"""
Row-level change notification feed.

The relational backend publishes one ChangeEvent per committed write. Consumers
subscribe to a table, optionally narrowed by a column equality filter, and read
events from an async iterator. Closing a subscription ends its iterator.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: ChangeType
    record: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return {"type": "change", "table": self.table, "event": self.event, "record": self.record}


class Subscription:
    """A single listener on one table. Iterate with ``async for``."""

    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        filters: dict[str, Any] | None = None,
    ) -> None:
        self.table = table
        self.filters = dict(filters or {})
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        for column, expected in self.filters.items():
            if str(event.record.get(column)) != str(expected):
                return False
        return True

    def deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def get(self) -> ChangeEvent | None:
        """Next event, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.remove(self)
        # Wake any pending reader so its iterator can finish.
        self._queue.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __repr__(self) -> str:
        return f"<Subscription table={self.table} filters={self.filters} closed={self._closed}>"


class ChangeFeed:
    """
    In-process publish/subscribe hub for table change events.
    Subscriptions are keyed by table name.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, table: str, filters: dict[str, Any] | None = None) -> Subscription:
        subscription = Subscription(self, table, filters)
        self._subscriptions.setdefault(table, []).append(subscription)
        logger.debug("Subscribed to %s changes filters=%s", table, subscription.filters)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        listeners = self._subscriptions.get(subscription.table)
        if not listeners:
            return
        try:
            listeners.remove(subscription)
        except ValueError:
            pass
        if not listeners:
            del self._subscriptions[subscription.table]
        logger.debug("Unsubscribed from %s changes", subscription.table)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver the event to every matching subscription; returns how many received it."""
        delivered = 0
        for subscription in list(self._subscriptions.get(event.table, [])):
            if subscription.matches(event):
                subscription.deliver(event)
                delivered += 1
        logger.debug(
            "Published %s on %s to %d subscriber(s)", event.event, event.table, delivered
        )
        return delivered

    def close_all(self) -> None:
        for listeners in list(self._subscriptions.values()):
            for subscription in list(listeners):
                subscription.close()

    @property
    def subscription_count(self) -> int:
        return sum(len(listeners) for listeners in self._subscriptions.values())
