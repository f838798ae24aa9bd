"""WebSocket connections that stream project events to clients."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

from editagent.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket

    from editagent.events import Subscription

log = get_logger("server.ws")


class ConnectionManager:
    """Tracks WebSocket clients per project and the tasks serving them.

    Every client gets its own channel subscription; ``forward`` pumps it to
    the socket until either side closes.
    """

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, project_key: str) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(project_key, set()).add(websocket)
        log.debug("Client connected for project %s", project_key)

    async def disconnect(self, websocket: WebSocket, project_key: str) -> None:
        async with self._lock:
            connections = self._connections.get(project_key)
            if connections is not None:
                connections.discard(websocket)
                if not connections:
                    del self._connections[project_key]
        log.debug("Client disconnected from project %s", project_key)

    async def forward(self, websocket: WebSocket, subscription: Subscription) -> None:
        """Send every event of ``subscription`` to ``websocket`` as JSON."""
        async for event in subscription:
            try:
                await websocket.send_json(event.to_wire())
            except Exception as e:
                log.debug("Dropping subscription after send failure: %s", e)
                subscription.close()
                return

    def spawn(self, coro: Any) -> asyncio.Task[Any]:
        """Run a command in the background, keeping a reference until done."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def get_connection_count(self, project_key: str | None = None) -> int:
        if project_key:
            return len(self._connections.get(project_key, set()))
        return sum(len(conns) for conns in self._connections.values())

    async def close_all(self, reason: str = "Server shutting down") -> None:
        async with self._lock:
            connections = [ws for conns in self._connections.values() for ws in conns]
            self._connections.clear()

        for websocket in connections:
            with contextlib.suppress(Exception):
                await websocket.close(code=1001, reason=reason)
        log.info("Closed %d client connections", len(connections))
