"""
Task ordering tests.
Covers: drag reorder, no-op drops, partitions by completion.
"""
from __future__ import annotations

import pytest

from todoboard.schemas.task import TaskRead, is_creatable
from todoboard.services.ordering import TaskOrdering


def _task(task_id: int, text: str, completed: bool = False) -> TaskRead:
    return TaskRead(id=task_id, owner_id="1", text=text, completed=completed)


@pytest.fixture
def ordering() -> TaskOrdering:
    return TaskOrdering([_task(1, "A"), _task(2, "B"), _task(3, "C"), _task(4, "D")])


def _texts(tasks: list[TaskRead]) -> list[str]:
    return [t.text for t in tasks]


class TestDragReorder:
    def test_drag_onto_later_item(self, ordering: TaskOrdering) -> None:
        ordering.drag_start(2)
        assert ordering.active_task.text == "B"
        assert ordering.drag_end(4) is True
        assert _texts(ordering.tasks) == ["A", "C", "D", "B"]
        assert ordering.active_id is None

    def test_drag_onto_earlier_item(self, ordering: TaskOrdering) -> None:
        assert ordering.move(4, 1) is True
        assert _texts(ordering.tasks) == ["D", "A", "B", "C"]

    def test_drop_on_self_is_noop(self, ordering: TaskOrdering) -> None:
        assert ordering.move(3, 3) is False
        assert _texts(ordering.tasks) == ["A", "B", "C", "D"]

    def test_drop_outside_any_target_is_noop(self, ordering: TaskOrdering) -> None:
        ordering.drag_start(1)
        assert ordering.drag_end(None) is False
        assert _texts(ordering.tasks) == ["A", "B", "C", "D"]
        assert ordering.active_id is None

    def test_unknown_ids_are_noop(self, ordering: TaskOrdering) -> None:
        assert ordering.move(9, 1) is False
        assert ordering.move(1, 9) is False
        assert _texts(ordering.tasks) == ["A", "B", "C", "D"]

    def test_drag_end_without_start_is_noop(self, ordering: TaskOrdering) -> None:
        assert ordering.drag_end(2) is False

    def test_cancel_clears_active(self, ordering: TaskOrdering) -> None:
        ordering.drag_start(1)
        ordering.drag_cancel()
        assert ordering.active_task is None


class TestPartitions:
    def test_partitions_follow_canonical_order(self) -> None:
        ordering = TaskOrdering([
            _task(1, "A"),
            _task(2, "B", completed=True),
            _task(3, "C"),
            _task(4, "D", completed=True),
        ])
        assert _texts(ordering.pending) == ["A", "C"]
        assert _texts(ordering.completed) == ["B", "D"]

        ordering.move(3, 1)
        assert _texts(ordering.pending) == ["C", "A"]
        assert _texts(ordering.completed) == ["B", "D"]

    def test_replace_discards_local_order(self, ordering: TaskOrdering) -> None:
        ordering.move(1, 4)
        ordering.replace([_task(1, "A"), _task(2, "B")])
        assert _texts(ordering.tasks) == ["A", "B"]

    def test_replace_clears_vanished_active_item(self, ordering: TaskOrdering) -> None:
        ordering.drag_start(4)
        ordering.replace([_task(1, "A")])
        assert ordering.active_id is None


class TestEntityRules:
    @pytest.mark.parametrize(
        "text, expected",
        [("Buy milk", True), ("  x ", True), ("", False), ("   ", False), (None, False)],
    )
    def test_is_creatable(self, text: str | None, expected: bool) -> None:
        assert is_creatable(text) is expected
