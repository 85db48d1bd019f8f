"""WebSocket handler for real-time transfer events."""

import asyncio
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections and broadcasts events.

    A client may subscribe to a single session id; it then only receives
    events whose payload carries that session id, plus notifications.
    """

    def __init__(self) -> None:
        self._connections: dict[WebSocket, str | None] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, session_id: str | None = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[websocket] = session_id
        logger.info(f"WebSocket client connected. Total: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.pop(websocket, None)
        logger.info(f"WebSocket client disconnected. Total: {len(self._connections)}")

    @staticmethod
    def _wants(subscription: str | None, data: dict) -> bool:
        if subscription is None:
            return True
        session_id = data.get("session_id")
        return session_id is None or session_id == subscription

    async def broadcast(self, event: str, data: dict) -> None:
        """Send an event to every interested client, dropping dead ones."""
        message = json.dumps({"event": event, "data": data})
        async with self._lock:
            dead: list[WebSocket] = []
            for ws, subscription in self._connections.items():
                if not self._wants(subscription, data):
                    continue
                try:
                    await ws.send_text(message)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                self._connections.pop(ws, None)

    async def handle_event(self, event_type: str, data: dict) -> None:
        """Event handler compatible with FountainManager.on_event()."""
        await self.broadcast(event_type, data)
