"""Live WebSocket channel.

One connection per device per workspace at ``/ws/{workspace_id}``.  The device
identifies itself with ``?deviceId=...`` so that it is left out of fan-out for
its own writes.  The server pushes ``{"type": "sync", "changes": {...}}``
messages; nothing is defined in the other direction, and anything received is
ignored.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from loguru import logger
from starlette.websockets import WebSocketState

from listsync.server.managers.workspaces import WorkspaceDirectory
from listsync.server.registry import CLOSE_TRY_AGAIN_LATER, ConnectionRegistry, ShuttingDownError

router = APIRouter(tags=["live"])

# Application-defined close codes (4000-4999).
CLOSE_WORKSPACE_NOT_FOUND = 4404


class WebSocketConnection:
    """Adapts a Starlette ``WebSocket`` to the registry's ``LiveConnection``."""

    def __init__(self, websocket: WebSocket, device_id: str | None) -> None:
        self._websocket = websocket
        self.device_id = device_id

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)

    async def close(self, code: int = 1000) -> None:
        if self.is_open:
            await self._websocket.close(code=code)


@router.websocket("/ws/{workspace_id}")
async def live_channel(
    websocket: WebSocket,
    workspace_id: str,
    device_id: str | None = Query(None, alias="deviceId"),
) -> None:
    directory: WorkspaceDirectory | None = getattr(websocket.app.state, "directory", None)
    connections: ConnectionRegistry | None = getattr(websocket.app.state, "connections", None)
    if directory is None or connections is None or connections.is_shutting_down:
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
        return

    if not await directory.exists(workspace_id):
        await websocket.close(code=CLOSE_WORKSPACE_NOT_FOUND)
        return

    await websocket.accept()
    conn = WebSocketConnection(websocket, device_id)
    try:
        connections.register(workspace_id, conn)
    except ShuttingDownError:
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
        return

    logger.info("Live channel opened: workspace={} device={}", workspace_id, device_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        connections.unregister(workspace_id, conn)
        logger.info("Live channel closed: workspace={} device={}", workspace_id, device_id)
