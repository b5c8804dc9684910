"""WebSocket streaming endpoint for live quote subscriptions."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from .errors import AuthError
from .fanout import FanoutManager
from .interface import TokenVerifier

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """Connection adapter over a FastAPI WebSocket.

    Frames are JSON objects ``{"event": ..., "data": ...}`` in both
    directions. Topics are tracked locally; the fan-out manager decides what
    to deliver.
    """

    def __init__(self, websocket: WebSocket, identity: str) -> None:
        self.id = uuid.uuid4().hex
        self.identity = identity
        self._websocket = websocket
        self._topics: set[str] = set()
        self._send_lock = asyncio.Lock()  # one frame at a time per socket

    @property
    def topics(self) -> set[str]:
        return set(self._topics)

    def join(self, topic: str) -> None:
        self._topics.add(topic)

    def leave(self, topic: str) -> None:
        self._topics.discard(topic)

    async def emit(self, event: str, payload: Any) -> None:
        async with self._send_lock:
            await self._websocket.send_json({"event": event, "data": payload})


def create_stream_router(fanout: FanoutManager, verify_token: TokenVerifier) -> APIRouter:
    """Create the streaming router bound to a fan-out manager.

    This factory pattern lets us inject the manager without globals.
    """
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.websocket("/ws")
    async def stream_quotes(websocket: WebSocket, token: str = "") -> None:
        """Listener channel for quote subscriptions.

        Connect with ``/api/stream/ws?token=<access token>``, then send e.g.

            {"event": "subscribe", "data": {"symbol": "AAPL"}}

        and receive ``subscribed``, ``price_update``, ``unsubscribed``,
        ``subscriptions`` and ``error`` events.
        """
        try:
            identity = await verify_token(token)
        except AuthError as e:
            logger.warning("WebSocket authentication failed: %s", e)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
            return

        await websocket.accept()
        connection = WebSocketConnection(websocket, identity)
        await fanout.connect(connection)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except ValueError:
                    await connection.emit("error", {"message": "Malformed message: expected JSON"})
                    continue
                if not isinstance(message, dict) or not isinstance(message.get("event"), str):
                    await connection.emit("error", {"message": "Malformed message: event is required"})
                    continue
                await fanout.handle_event(connection, message["event"], message.get("data") or {})
        except WebSocketDisconnect:
            logger.info("Stream client disconnected: %s", identity)
        finally:
            await fanout.disconnect(connection)

    return router
