"""
Board synchronisation tests.
Covers: end-to-end board flow on both backends, reload after every write,
change-notification subscriptions, stale and timed-out reloads, store
failures, drag order persistence per backend.
"""
from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from todoboard.core.exceptions import StoreError
from todoboard.crud.base import TaskStore
from todoboard.crud.remote import RemoteTaskStore
from todoboard.schemas.comment import CommentRead
from todoboard.schemas.task import TaskRead
from todoboard.services.board_service import BoardService
from todoboard.services.change_feed import ChangeFeed
from todoboard.services.sync_service import BoardSync, SessionContext

pytestmark = pytest.mark.asyncio

TARO = SessionContext(user_id="1", user_name="Taro")


def _texts(tasks: list[TaskRead]) -> list[str]:
    return [t.text for t in tasks]


def _by_text(board: BoardSync, text: str) -> TaskRead:
    return next(t for t in board.tasks if t.text == text)


async def _run_board_scenario(service: BoardService) -> None:
    await service.login("1")
    board = service.board

    await board.add_task("Buy milk")
    await board.add_task("Walk dog")
    assert _texts(board.pending) == ["Buy milk", "Walk dog"]
    assert board.completed == []

    await board.toggle_task(_by_text(board, "Buy milk").id)
    assert _texts(board.pending) == ["Walk dog"]
    assert _texts(board.completed) == ["Buy milk"]

    await board.delete_task(_by_text(board, "Walk dog").id)
    assert board.pending == []
    assert _texts(board.completed) == ["Buy milk"]

    await board.add_comment(_by_text(board, "Buy milk").id, "from the corner shop")
    comments = _by_text(board, "Buy milk").comments
    assert [c.text for c in comments] == ["from the corner shop"]
    assert comments[0].author_name == service.user.name


class TestBoardScenario:
    async def test_local_backend(self, local_service: BoardService) -> None:
        await _run_board_scenario(local_service)
        assert local_service.board.loading is False

    async def test_remote_backend(self, remote_service: BoardService) -> None:
        await _run_board_scenario(remote_service)

    async def test_boards_are_scoped_to_the_signed_in_user(self, remote_service: BoardService) -> None:
        await remote_service.login("1")
        await remote_service.board.add_task("Taro's task")

        await remote_service.login("2")
        assert remote_service.board.tasks == []

    async def test_blank_input_is_not_sent(self, local_service: BoardService) -> None:
        await local_service.login("1")
        assert await local_service.board.add_task("   ") is None
        assert local_service.board.tasks == []


class TestChangeSubscriptions:
    async def test_subscriptions_follow_the_session(
        self, remote_service: BoardService, feed: ChangeFeed
    ) -> None:
        assert feed.subscription_count == 0
        await remote_service.login("1")
        assert feed.subscription_count == 2
        subscriptions = remote_service.board.subscriptions
        assert {s.table for s in subscriptions} == {"tasks", "comments"}
        tasks_sub = next(s for s in subscriptions if s.table == "tasks")
        assert tasks_sub.filters == {"user_id": "1"}

        await remote_service.login("2")
        assert feed.subscription_count == 2

        await remote_service.logout()
        assert feed.subscription_count == 0
        assert all(s.closed for s in subscriptions)

    async def test_external_write_triggers_reload(
        self, remote_service: BoardService, session_factory, feed: ChangeFeed, eventually
    ) -> None:
        await remote_service.login("1")
        board = remote_service.board
        assert board.tasks == []

        other_client = RemoteTaskStore(session_factory, feed)
        created = await other_client.create("1", "Added elsewhere")
        await eventually(lambda: _texts(board.tasks) == ["Added elsewhere"])

        await other_client.add_comment("1", created.id, "Hanako", "seen it")
        await eventually(lambda: len(board.tasks[0].comments) == 1)

    async def test_other_owners_writes_do_not_show(
        self, remote_service: BoardService, session_factory, feed: ChangeFeed
    ) -> None:
        await remote_service.login("1")
        board = remote_service.board
        other_client = RemoteTaskStore(session_factory, feed)
        await other_client.create("2", "Hanako's task")
        assert await board.reload() is True
        assert board.tasks == []

    async def test_local_backend_has_no_subscriptions(self, local_service: BoardService) -> None:
        await local_service.login("1")
        assert local_service.board.subscriptions == []


class ScriptedStore(TaskStore):
    """Store whose loads wait on gates so tests can control completion order."""

    def __init__(self) -> None:
        self.loads: list[tuple[asyncio.Event, list[TaskRead]]] = []
        self.fail_writes = False
        self.saved_orders: list[list[int]] = []

    def script_load(self, tasks: list[TaskRead]) -> asyncio.Event:
        gate = asyncio.Event()
        self.loads.append((gate, tasks))
        return gate

    async def load(self, owner_id: str) -> list[TaskRead]:
        gate, tasks = self.loads.pop(0)
        await gate.wait()
        return tasks

    async def create(self, owner_id: str, text: str) -> TaskRead | None:
        if self.fail_writes:
            raise StoreError("create", ConnectionError("network down"))
        return TaskRead(id=99, owner_id=owner_id, text=text)

    async def toggle(self, owner_id: str, task_id: int) -> TaskRead | None:
        raise StoreError("toggle")

    async def delete(self, owner_id: str, task_id: int) -> bool:
        raise StoreError("delete")

    async def add_comment(
        self, owner_id: str, task_id: int, author_name: str, text: str
    ) -> CommentRead | None:
        raise StoreError("add_comment")

    async def save_order(self, owner_id: str, ordered_ids: Sequence[int]) -> None:
        self.saved_orders.append(list(ordered_ids))
        raise StoreError("save_order")


def _task(task_id: int, text: str) -> TaskRead:
    return TaskRead(id=task_id, owner_id="1", text=text)


class TestReloadConsistency:
    async def test_stale_reload_is_discarded(self) -> None:
        store = ScriptedStore()
        board = BoardSync(store, TARO, reload_timeout=2.0)

        old_gate = store.script_load([_task(1, "old")])
        new_gate = store.script_load([_task(1, "new")])
        older = asyncio.create_task(board.reload())
        newer = asyncio.create_task(board.reload())
        await asyncio.sleep(0)
        assert board.loading is True

        new_gate.set()
        assert await newer is True
        old_gate.set()
        assert await older is False

        assert _texts(board.tasks) == ["new"]
        assert board.loading is False

    async def test_reload_times_out(self) -> None:
        store = ScriptedStore()
        board = BoardSync(store, TARO, reload_timeout=0.05)
        store.script_load([_task(1, "never")])

        assert await board.reload() is False
        assert board.tasks == []
        assert board.loading is False

    async def test_failed_writes_leave_board_unchanged(self) -> None:
        store = ScriptedStore()
        board = BoardSync(store, TARO, reload_timeout=2.0)
        store.script_load([_task(1, "A"), _task(2, "B")]).set()
        await board.start()
        before = board.tasks

        store.fail_writes = True
        assert await board.add_task("new") is None
        assert await board.toggle_task(1) is None
        assert await board.delete_task(1) is False
        assert await board.add_comment(1, "hi") is None
        assert board.tasks == before
        assert board.loading is False
        await board.stop()

    async def test_failed_order_save_keeps_local_move(self) -> None:
        store = ScriptedStore()
        board = BoardSync(store, TARO, reload_timeout=2.0)
        store.script_load([_task(1, "A"), _task(2, "B")]).set()
        await board.reload()

        assert await board.move_task(2, 1) is True
        assert _texts(board.tasks) == ["B", "A"]
        assert store.saved_orders == [[2, 1]]


class TestDragOrderPersistence:
    async def test_local_order_survives_reload(self, local_service: BoardService) -> None:
        await local_service.login("1")
        board = local_service.board
        for text in ("A", "B", "C"):
            await board.add_task(text)

        assert await board.move_task(_by_text(board, "C").id, _by_text(board, "A").id) is True
        assert _texts(board.tasks) == ["C", "A", "B"]
        await board.reload()
        assert _texts(board.tasks) == ["C", "A", "B"]

    async def test_remote_order_is_lost_on_reload(self, remote_service: BoardService) -> None:
        await remote_service.login("1")
        board = remote_service.board
        for text in ("A", "B", "C"):
            await board.add_task(text)

        await board.move_task(_by_text(board, "C").id, _by_text(board, "A").id)
        assert _texts(board.tasks) == ["C", "A", "B"]
        await board.reload()
        assert _texts(board.tasks) == ["A", "B", "C"]
