"""WebSocket handler for export progress.

Clients connect to /ws/{project_id} and receive progress, completion and
error messages for exports started with that ``progress_channel``.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = structlog.get_logger()


class ConnectionManager:
    """Manages WebSocket connections per project."""

    def __init__(self) -> None:
        self._connections: dict[str, list[WebSocket]] = {}

    def connection_count(self, project_id: str) -> int:
        return len(self._connections.get(project_id, []))

    async def connect(self, project_id: str, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        self._connections.setdefault(project_id, []).append(websocket)
        logger.info("websocket_connected", project_id=project_id)

    def disconnect(self, project_id: str, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        if project_id in self._connections:
            self._connections[project_id] = [
                ws for ws in self._connections[project_id] if ws != websocket
            ]
            if not self._connections[project_id]:
                del self._connections[project_id]
        logger.info("websocket_disconnected", project_id=project_id)

    async def _broadcast(self, project_id: str, payload: dict[str, Any]) -> None:
        text = json.dumps(payload)
        for ws in list(self._connections.get(project_id, [])):
            try:
                if ws.client_state == WebSocketState.CONNECTED:
                    await ws.send_text(text)
            except Exception:
                self.disconnect(project_id, ws)

    async def send_progress(self, project_id: str, percent: int, message: str) -> None:
        await self._broadcast(
            project_id,
            {"type": "progress", "percentage": percent, "message": message},
        )

    async def send_complete(self, project_id: str, result: dict[str, Any]) -> None:
        await self._broadcast(project_id, {"type": "complete", "result": result})

    async def send_error(self, project_id: str, error: str) -> None:
        await self._broadcast(project_id, {"type": "error", "error": error})


# Global connection manager
manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket, project_id: str) -> None:
    """Keep the socket open and answer pings until the client leaves."""
    await manager.connect(project_id, websocket)
    try:
        while True:
            data = await websocket.receive_text()
            msg = json.loads(data)
            if msg.get("action") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        manager.disconnect(project_id, websocket)
