"""
Local backend: tasks and users kept in client-side key-value storage.

Each owner's tasks live under ``tasks_{owner_id}`` as one JSON array with the
comments embedded, so array order is the task order and deleting a task drops
its comments with it. Every mutation rewrites the whole array.

Stored task shape::

    {"id": 3, "text": "Buy milk", "completed": false,
     "comments": [{"id": 1718000000000, "author": "Taro", "text": "...",
                   "timestamp": 1718000000000}]}
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from todoboard.core.exceptions import DuplicateEmailError
from todoboard.crud.base import TaskStore, UserDirectory
from todoboard.db.local_storage import LocalStorage
from todoboard.schemas.comment import CommentRead
from todoboard.schemas.task import TaskRead, clean_text, is_creatable
from todoboard.schemas.user import UserRead

logger = logging.getLogger(__name__)

USERS_KEY = "users"

DEFAULT_USERS: list[dict[str, str]] = [
    {"id": "1", "name": "田中太郎", "email": "tanaka@example.com"},
    {"id": "2", "name": "佐藤花子", "email": "sato@example.com"},
    {"id": "3", "name": "山田次郎", "email": "yamada@example.com"},
]

Record = dict[str, Any]


def tasks_key(owner_id: str) -> str:
    return f"tasks_{owner_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _read_json_list(storage: LocalStorage, key: str) -> list[Any]:
    """Parse a stored JSON array; missing or corrupt values read as empty."""
    raw = storage.get_item(key)
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        logger.warning("Discarding corrupt value under key=%s: %s", key, exc)
        return []
    if not isinstance(data, list):
        logger.warning("Discarding non-list value under key=%s", key)
        return []
    return data


def migrate_task_record(record: Any) -> Record | None:
    """
    Bring a stored task record up to the current shape.
    Records without a comments list get an empty one; applying this twice
    changes nothing. Unusable records return None.
    """
    if not isinstance(record, dict):
        return None
    if not isinstance(record.get("id"), int) or not isinstance(record.get("text"), str):
        return None
    migrated = dict(record)
    if not isinstance(migrated.get("comments"), list):
        migrated["comments"] = []
    migrated["completed"] = bool(migrated.get("completed", False))
    return migrated


class LocalTaskStore(TaskStore):

    def __init__(
        self,
        storage: LocalStorage,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._storage = storage
        self._clock = clock
        # owner_id -> next task id; never moves backwards within a process
        self._next_ids: dict[str, int] = {}
        self._last_comment_ms = 0

    # ── Storage helpers ───────────────────────────────────────────────────────

    def _read(self, owner_id: str) -> list[Record]:
        records: list[Record] = []
        for raw in _read_json_list(self._storage, tasks_key(owner_id)):
            record = migrate_task_record(raw)
            if record is None:
                logger.warning("Dropping malformed task record for user_id=%s: %r", owner_id, raw)
                continue
            records.append(record)
        return records

    def _write(self, owner_id: str, records: list[Record]) -> None:
        self._storage.set_item(tasks_key(owner_id), json.dumps(records, ensure_ascii=False))

    def _seed_next_id(self, owner_id: str, records: list[Record]) -> int:
        max_id = max((r["id"] for r in records), default=0)
        next_id = max(self._next_ids.get(owner_id, 1), max_id + 1)
        self._next_ids[owner_id] = next_id
        return next_id

    def _next_comment_ms(self) -> int:
        now = self._clock()
        if now <= self._last_comment_ms:
            now = self._last_comment_ms + 1
        self._last_comment_ms = now
        return now

    @staticmethod
    def _to_comment(task_id: int, raw: Any) -> CommentRead | None:
        if not isinstance(raw, dict) or not isinstance(raw.get("text"), str):
            return None
        timestamp = raw.get("timestamp", raw.get("id"))
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return None
        comment_id = raw.get("id", timestamp)
        if isinstance(comment_id, bool) or not isinstance(comment_id, (int, float)):
            return None
        try:
            comment_id = int(comment_id)
            created_at = _from_ms(int(timestamp))
        except (ValueError, OverflowError, OSError):
            return None
        return CommentRead(
            id=comment_id,
            task_id=task_id,
            author_name=str(raw.get("author", "")),
            text=raw["text"],
            created_at=created_at,
        )

    def _to_task(self, owner_id: str, record: Record) -> TaskRead:
        comments = []
        for raw in record["comments"]:
            comment = self._to_comment(record["id"], raw)
            if comment is None:
                logger.warning(
                    "Dropping malformed comment on task id=%s for user_id=%s: %r",
                    record["id"], owner_id, raw,
                )
                continue
            comments.append(comment)
        return TaskRead(
            id=record["id"],
            owner_id=owner_id,
            text=record["text"],
            completed=record["completed"],
            comments=comments,
        )

    # ── TaskStore ─────────────────────────────────────────────────────────────

    async def load(self, owner_id: str) -> list[TaskRead]:
        records = self._read(owner_id)
        self._seed_next_id(owner_id, records)
        return [self._to_task(owner_id, record) for record in records]

    async def create(self, owner_id: str, text: str) -> TaskRead | None:
        if not is_creatable(text):
            return None
        records = self._read(owner_id)
        task_id = self._seed_next_id(owner_id, records)
        record: Record = {
            "id": task_id,
            "text": clean_text(text),
            "completed": False,
            "comments": [],
        }
        records.append(record)
        self._write(owner_id, records)
        self._next_ids[owner_id] = task_id + 1
        logger.info("Created task id=%s for user_id=%s", task_id, owner_id)
        return self._to_task(owner_id, record)

    async def toggle(self, owner_id: str, task_id: int) -> TaskRead | None:
        records = self._read(owner_id)
        for record in records:
            if record["id"] == task_id:
                record["completed"] = not record["completed"]
                self._write(owner_id, records)
                return self._to_task(owner_id, record)
        return None

    async def delete(self, owner_id: str, task_id: int) -> bool:
        records = self._read(owner_id)
        remaining = [r for r in records if r["id"] != task_id]
        if len(remaining) == len(records):
            return False
        self._write(owner_id, remaining)
        logger.info("Deleted task id=%s for user_id=%s", task_id, owner_id)
        return True

    async def add_comment(
        self, owner_id: str, task_id: int, author_name: str, text: str
    ) -> CommentRead | None:
        if not is_creatable(text):
            return None
        records = self._read(owner_id)
        for record in records:
            if record["id"] != task_id:
                continue
            stamp = self._next_comment_ms()
            raw = {"id": stamp, "author": author_name, "text": clean_text(text), "timestamp": stamp}
            record["comments"].append(raw)
            self._write(owner_id, records)
            return self._to_comment(task_id, raw)
        return None

    async def save_order(self, owner_id: str, ordered_ids: Sequence[int]) -> None:
        records = self._read(owner_id)
        by_id = {r["id"]: r for r in records}
        wanted = [task_id for task_id in ordered_ids if task_id in by_id]
        placed = set(wanted)
        reordered = [by_id[task_id] for task_id in wanted]
        reordered.extend(r for r in records if r["id"] not in placed)
        self._write(owner_id, reordered)


class LocalUserDirectory(UserDirectory):
    """User directory stored under the ``users`` key, seeded on first use."""

    def __init__(
        self,
        storage: LocalStorage,
        *,
        clock: Callable[[], int] = _now_ms,
        seed: bool = True,
    ) -> None:
        self._storage = storage
        self._clock = clock
        if seed and storage.get_item(USERS_KEY) is None:
            storage.set_item(USERS_KEY, json.dumps(DEFAULT_USERS, ensure_ascii=False))

    def _read(self) -> list[UserRead]:
        users = []
        for raw in _read_json_list(self._storage, USERS_KEY):
            try:
                users.append(UserRead.model_validate(raw))
            except ValueError:
                logger.warning("Dropping malformed user record: %r", raw)
        return users

    async def list_users(self) -> list[UserRead]:
        return self._read()

    async def get(self, user_id: str) -> UserRead | None:
        return next((u for u in self._read() if u.id == user_id), None)

    async def get_by_email(self, email: str) -> UserRead | None:
        wanted = email.strip().lower()
        return next((u for u in self._read() if u.email.lower() == wanted), None)

    async def create(self, name: str, email: str) -> UserRead:
        users = self._read()
        wanted = email.strip().lower()
        if any(u.email.lower() == wanted for u in users):
            raise DuplicateEmailError("create_user")
        taken = {u.id for u in users}
        stamp = self._clock()
        while str(stamp) in taken:
            stamp += 1
        user = UserRead(id=str(stamp), name=name, email=email)
        users.append(user)
        self._storage.set_item(
            USERS_KEY,
            json.dumps([u.model_dump(mode="json", exclude_none=True) for u in users], ensure_ascii=False),
        )
        logger.info("Registered local user id=%s", user.id)
        return user
