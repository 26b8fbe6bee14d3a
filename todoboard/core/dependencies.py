"""
FastAPI dependency injection functions.
Provides the board service, the signed-in user and the active board.
"""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from todoboard.schemas.user import UserRead
from todoboard.services.board_service import BoardService
from todoboard.services.sync_service import BoardSync

__all__ = ["get_board_service", "get_current_user", "get_active_board", "Boards", "CurrentUser", "ActiveBoard"]


def get_board_service(request: Request) -> BoardService:
    return request.app.state.board_service


async def get_current_user(
    service: Annotated[BoardService, Depends(get_board_service)],
) -> UserRead:
    """Raises UnauthorizedException when nobody is logged in."""
    return service.user


async def get_active_board(
    service: Annotated[BoardService, Depends(get_board_service)],
) -> BoardSync:
    return service.board


# Convenience type aliases for route signatures
Boards = Annotated[BoardService, Depends(get_board_service)]
CurrentUser = Annotated[UserRead, Depends(get_current_user)]
ActiveBoard = Annotated[BoardSync, Depends(get_active_board)]
