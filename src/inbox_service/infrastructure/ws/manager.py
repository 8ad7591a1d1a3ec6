"""In-process WebSocket fan-out.

Every operator sees the whole inbox, so events go to all connections. Each
connection owns a bounded queue drained by its own writer task: a slow client
loses its oldest frames instead of stalling delivery to everyone else.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from inbox_service.infrastructure.ws.protocol import encode

logger = logging.getLogger(__name__)


class _Connection:
    def __init__(self, ws: WebSocket, principal_key: str, queue_size: int) -> None:
        self.ws = ws
        self.principal_key = principal_key
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self.writer: asyncio.Task[None] | None = None

    def enqueue(self, raw: str) -> None:
        try:
            self.queue.put_nowait(raw)
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.queue.put_nowait(raw)
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(
                    "WS client %s is slow, dropped %d frames", self.principal_key, self.dropped,
                )


class ConnectionManager:
    """Tracks WebSocket connections and broadcasts fan-out events to them."""

    def __init__(self, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._connections: dict[WebSocket, _Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, ws: WebSocket, principal_key: str) -> None:
        await ws.accept()
        conn = _Connection(ws, principal_key, self._queue_size)
        conn.writer = asyncio.create_task(self._write(conn), name=f"ws-writer-{principal_key}")
        self._connections[ws] = conn
        logger.debug("WS connected: %s (total=%d)", principal_key, len(self._connections))

    async def disconnect(self, ws: WebSocket) -> None:
        conn = self._connections.pop(ws, None)
        if conn is None:
            return
        if conn.writer is not None:
            conn.writer.cancel()
            await asyncio.gather(conn.writer, return_exceptions=True)
        logger.debug("WS disconnected: %s", conn.principal_key)

    async def broadcast(self, event_type: str, data: dict[str, Any]) -> None:
        raw = encode(event_type, data)
        for conn in list(self._connections.values()):
            conn.enqueue(raw)

    async def send(self, ws: WebSocket, event_type: str, data: dict[str, Any]) -> None:
        """Queue a frame for one connection, behind anything already queued."""
        conn = self._connections.get(ws)
        if conn is not None:
            conn.enqueue(encode(event_type, data))

    async def close_all(self) -> None:
        for ws in list(self._connections):
            await self.disconnect(ws)

    async def _write(self, conn: _Connection) -> None:
        try:
            while True:
                raw = await conn.queue.get()
                await conn.ws.send_text(raw)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.debug("WS send failed for %s, dropping connection", conn.principal_key)
            self._connections.pop(conn.ws, None)
