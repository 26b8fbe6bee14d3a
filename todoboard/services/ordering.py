"""
In-memory task ordering for the board.

Holds the canonical task sequence, splits it into pending and completed
columns, and applies drag reordering. A drag moves the active task to the
drop target's index; dropping on nothing or on the task itself changes nothing.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator

from todoboard.schemas.task import TaskRead


class TaskOrdering:

    def __init__(self, tasks: Iterable[TaskRead] = ()) -> None:
        self._tasks: list[TaskRead] = list(tasks)
        self.active_id: int | None = None

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[TaskRead]:
        return iter(list(self._tasks))

    @property
    def tasks(self) -> list[TaskRead]:
        return list(self._tasks)

    @property
    def ids(self) -> list[int]:
        return [task.id for task in self._tasks]

    @property
    def pending(self) -> list[TaskRead]:
        return [task for task in self._tasks if not task.completed]

    @property
    def completed(self) -> list[TaskRead]:
        return [task for task in self._tasks if task.completed]

    @property
    def active_task(self) -> TaskRead | None:
        if self.active_id is None:
            return None
        return next((t for t in self._tasks if t.id == self.active_id), None)

    def replace(self, tasks: Iterable[TaskRead]) -> None:
        """Swap in a freshly loaded sequence, discarding any local ordering."""
        self._tasks = list(tasks)
        if self.active_id is not None and self.active_task is None:
            self.active_id = None

    def index_of(self, task_id: int) -> int | None:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        return None

    # ── Drag gestures ─────────────────────────────────────────────────────────

    def drag_start(self, task_id: int) -> None:
        self.active_id = task_id

    def drag_cancel(self) -> None:
        self.active_id = None

    def drag_end(self, over_id: int | None) -> bool:
        """Finish the gesture; returns True if the ordering changed."""
        active_id, self.active_id = self.active_id, None
        if active_id is None or over_id is None or active_id == over_id:
            return False
        old_index = self.index_of(active_id)
        new_index = self.index_of(over_id)
        if old_index is None or new_index is None:
            return False
        moved = self._tasks.pop(old_index)
        self._tasks.insert(new_index, moved)
        return True

    def move(self, active_id: int, over_id: int | None) -> bool:
        self.drag_start(active_id)
        return self.drag_end(over_id)
