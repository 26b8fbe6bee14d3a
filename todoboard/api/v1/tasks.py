"""
Board routes.
Every mutation answers with the freshly reloaded board.
"""
from __future__ import annotations

from fastapi import APIRouter, Query, status

from todoboard.core.dependencies import ActiveBoard, CurrentUser
from todoboard.schemas.board import BoardRead
from todoboard.schemas.comment import CommentCreate
from todoboard.schemas.task import TaskCreate, TaskReorder

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get(
    "/",
    response_model=BoardRead,
    summary="Get the board split into pending and completed tasks",
)
async def get_board(
    board: ActiveBoard,
    current_user: CurrentUser,
    refresh: bool = Query(default=False),
) -> BoardRead:
    if refresh:
        await board.reload()
    return board.view(current_user)


@router.post(
    "/",
    response_model=BoardRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new task",
)
async def create_task(
    task_in: TaskCreate,
    board: ActiveBoard,
    current_user: CurrentUser,
) -> BoardRead:
    await board.add_task(task_in.text)
    return board.view(current_user)


@router.post(
    "/reorder",
    response_model=BoardRead,
    summary="Move a task onto another task's position",
)
async def reorder_tasks(
    body: TaskReorder,
    board: ActiveBoard,
    current_user: CurrentUser,
) -> BoardRead:
    await board.move_task(body.active_id, body.over_id)
    return board.view(current_user)


@router.post(
    "/{task_id}/toggle",
    response_model=BoardRead,
    summary="Toggle a task between pending and completed",
)
async def toggle_task(
    task_id: int,
    board: ActiveBoard,
    current_user: CurrentUser,
) -> BoardRead:
    await board.toggle_task(task_id)
    return board.view(current_user)


@router.delete(
    "/{task_id}",
    response_model=BoardRead,
    summary="Delete a task and its comments",
)
async def delete_task(
    task_id: int,
    board: ActiveBoard,
    current_user: CurrentUser,
) -> BoardRead:
    await board.delete_task(task_id)
    return board.view(current_user)


@router.post(
    "/{task_id}/comments",
    response_model=BoardRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment to a task",
)
async def add_comment(
    task_id: int,
    comment_in: CommentCreate,
    board: ActiveBoard,
    current_user: CurrentUser,
) -> BoardRead:
    await board.add_comment(task_id, comment_in.text)
    return board.view(current_user)
