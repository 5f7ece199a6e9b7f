"""WebSocket connection registry keyed by session handle."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ClientConnection:
    """Wraps a single WebSocket connection with metadata."""

    __slots__ = ("ws", "session_id")

    def __init__(self, ws: WebSocket, session_id: str) -> None:
        self.ws = ws
        self.session_id = session_id

    async def send(self, text: str) -> bool:
        """Send text, returning False on failure."""
        try:
            await self.ws.send_text(text)
            return True
        except Exception:
            logger.debug("Send failed for session %s", self.session_id, exc_info=True)
            return False


def encode(msg_type: str, data: Any) -> str:
    return json.dumps({"type": msg_type, "data": data})


class ConnectionManager:
    """Maps session handles to their live WebSocket."""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}

    async def connect(self, ws: WebSocket) -> ClientConnection:
        """Accept *ws* and issue it a fresh session handle."""
        await ws.accept()
        conn = ClientConnection(ws, str(uuid.uuid4()))
        self._connections[conn.session_id] = conn
        logger.info("WS connect: session=%s", conn.session_id)
        return conn

    def disconnect(self, session_id: str) -> None:
        if self._connections.pop(session_id, None) is not None:
            logger.info("WS disconnect: session=%s", session_id)

    async def send(self, session_id: str, msg_type: str, data: Any) -> None:
        """Send one message to a session; dead sockets are dropped."""
        conn = self._connections.get(session_id)
        if conn is None:
            return
        if not await conn.send(encode(msg_type, data)):
            self.disconnect(session_id)

    async def send_many(self, session_ids: Iterable[str], msg_type: str, data: Any) -> None:
        text = encode(msg_type, data)
        stale: list[str] = []
        for sid in session_ids:
            conn = self._connections.get(sid)
            if conn is not None and not await conn.send(text):
                stale.append(sid)
        for sid in stale:
            self.disconnect(sid)

    @property
    def count(self) -> int:
        return len(self._connections)
