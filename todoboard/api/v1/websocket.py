"""
WebSocket change stream.
Forwards row-level change events for the signed-in user's board so a client
knows when to re-fetch it. The stream belongs to the board it was opened on:
logout or a switch to another user closes the socket. Heartbeat ping every
30 seconds.
"""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from todoboard.services.board_service import BoardService
from todoboard.services.change_feed import Subscription
from todoboard.services.sync_service import BoardSync

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])

HEARTBEAT_INTERVAL = 30  # seconds

CLOSE_NO_SESSION = 4001
CLOSE_NO_FEED = 4004


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    The server sends:
        - {"type": "connected", "user_id": "..."} on successful connection.
        - {"type": "change", "table": ..., "event": ..., "record": {...}} per change.
        - {"type": "ping"} every 30 seconds as a heartbeat.

    Closes with 4001 when nobody is logged in or the session ends, and 4004
    when the storage backend has no change notifications.
    """
    service: BoardService = websocket.app.state.board_service
    board = service.active_board
    if board is None:
        await websocket.close(code=CLOSE_NO_SESSION, reason="No active session")
        return

    if service.store.feed is None:
        await websocket.close(code=CLOSE_NO_FEED, reason="Change notifications are not available")
        return

    user_id = board.context.user_id
    subscriptions = board.open_stream()
    await websocket.accept()
    logger.info("WebSocket connected: user_id=%s", user_id)

    forwarders = [asyncio.create_task(_forward(websocket, s, board)) for s in subscriptions]
    receiver = asyncio.create_task(_receive(websocket, user_id))
    heartbeat = asyncio.create_task(_heartbeat(websocket))
    background = [*forwarders, receiver, heartbeat]

    try:
        await websocket.send_json({"type": "connected", "user_id": user_id})
        await asyncio.wait([receiver, *forwarders], return_when=asyncio.FIRST_COMPLETED)
        if not receiver.done() and not board.started:
            logger.info("Session ended; closing WebSocket for user_id=%s", user_id)
            await websocket.close(code=CLOSE_NO_SESSION, reason="Session ended")
    except Exception as exc:
        logger.error("WebSocket error for user_id=%s: %s", user_id, exc)
    finally:
        for subscription in subscriptions:
            subscription.close()
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)


async def _receive(websocket: WebSocket, user_id: str) -> None:
    try:
        while True:
            # Wait for messages from client (e.g., pong responses)
            data = await websocket.receive_json()
            if data.get("type") == "pong":
                logger.debug("Received pong from user_id=%s", user_id)
    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected: user_id=%s", user_id)
    except Exception as exc:
        logger.error("WebSocket receive error for user_id=%s: %s", user_id, exc)


async def _forward(websocket: WebSocket, subscription: Subscription, board: BoardSync) -> None:
    async for event in subscription:
        if not board.owns_event(event):
            continue
        try:
            await websocket.send_json(event.to_message())
        except Exception:
            break


async def _heartbeat(websocket: WebSocket) -> None:
    """Send periodic ping frames to keep the connection alive."""
    while True:
        await asyncio.sleep(HEARTBEAT_INTERVAL)
        try:
            await websocket.send_json({"type": "ping"})
        except Exception:
            break
