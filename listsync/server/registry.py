"""In-process live connection registry.

Tracks the open WebSocket connections of each workspace so that merge results
can be pushed to sibling devices immediately.  Ephemeral -- empty on process
restart; devices catch up through the request/response sync path.

Connections are tagged with the device id they declared when connecting, which
is how the originating device of a sync is excluded from its own fan-out.
Connections without a device id receive every broadcast.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol

import anyio
from loguru import logger

from listsync.models.api import LiveMessage

CLOSE_TRY_AGAIN_LATER = 1013
"""Close code for connections that cannot be served right now."""


class ShuttingDownError(RuntimeError):
    """Raised when attempting to register a connection during shutdown."""


class LiveConnection(Protocol):
    """What the registry needs from a live connection."""

    device_id: str | None

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionRegistry:
    """Registry of live connections keyed by workspace id.

    Created once in the app lifespan and torn down with ``close_all`` at
    shutdown.  All methods run on the event loop; no extra locking needed.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self._connections: dict[str, set[LiveConnection]] = {}
        self._pending: set[asyncio.Task[int]] = set()
        self._send_timeout = send_timeout
        self._shutting_down = False

    # -- Mutation --------------------------------------------------------------

    def register(self, workspace_id: str, connection: LiveConnection) -> None:
        """Add a connection.  Raises ``ShuttingDownError`` if shutting down."""
        if self._shutting_down:
            raise ShuttingDownError
        self._connections.setdefault(workspace_id, set()).add(connection)
        logger.debug(
            "Registry: register connection (workspace={}, device={}, total={})",
            workspace_id,
            connection.device_id,
            len(self._connections[workspace_id]),
        )

    def unregister(self, workspace_id: str, connection: LiveConnection) -> None:
        """Remove a connection.  Safe to call when it is already gone."""
        connections = self._connections.get(workspace_id)
        if connections is None or connection not in connections:
            return
        connections.discard(connection)
        if not connections:
            del self._connections[workspace_id]
        logger.debug("Registry: unregister connection (workspace={}, device={})", workspace_id, connection.device_id)

    # -- Query -----------------------------------------------------------------

    def connections(self, workspace_id: str) -> list[LiveConnection]:
        """Return a snapshot of a workspace's connections."""
        return list(self._connections.get(workspace_id, ()))

    def connected_devices(self, workspace_id: str) -> set[str]:
        """Device ids with at least one open connection to the workspace."""
        return {
            conn.device_id
            for conn in self._connections.get(workspace_id, ())
            if conn.device_id is not None and conn.is_open
        }

    @property
    def active_count(self) -> int:
        return sum(len(conns) for conns in self._connections.values())

    # -- Fan-out ---------------------------------------------------------------

    def publish(
        self,
        workspace_id: str,
        message: LiveMessage,
        exclude_device_id: str | None = None,
    ) -> None:
        """Schedule a ``broadcast`` without waiting for it.

        The sync response never waits on a slow socket.  Pending fan-outs are
        tracked so ``wait_idle`` and ``close_all`` can settle them.
        """
        if self._shutting_down:
            return
        task = asyncio.create_task(self.broadcast(workspace_id, message, exclude_device_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        """Wait until every scheduled fan-out has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def broadcast(
        self,
        workspace_id: str,
        message: LiveMessage,
        exclude_device_id: str | None = None,
    ) -> int:
        """Send *message* to the workspace's open connections.

        Connections registered under *exclude_device_id* are skipped, as are
        connections that are no longer open.  Sends run concurrently and each
        is bounded by ``send_timeout``.  A failed or stalled send drops that
        connection; nothing is retried or raised.  Returns the number of
        connections the message was handed to.
        """
        targets = [
            conn
            for conn in self.connections(workspace_id)
            if conn.is_open and (exclude_device_id is None or conn.device_id != exclude_device_id)
        ]
        if not targets:
            return 0

        data = message.model_dump_json(by_alias=True)
        results = await asyncio.gather(*(self._send(workspace_id, conn, data) for conn in targets))
        delivered = sum(results)

        logger.debug("Registry: broadcast to {}/{} connections (workspace={})", delivered, len(targets), workspace_id)
        return delivered

    async def _send(self, workspace_id: str, conn: LiveConnection, data: str) -> bool:
        try:
            with anyio.fail_after(self._send_timeout):
                await conn.send_text(data)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Registry: send failed ({!r}), dropping connection", exc)
            self.unregister(workspace_id, conn)
            with anyio.move_on_after(self._send_timeout), contextlib.suppress(Exception):
                await conn.close(CLOSE_TRY_AGAIN_LATER)
            return False
        return True

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New registrations are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new connections")

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    async def close_all(self, code: int = 1001) -> int:
        """Close every registered connection.  Returns how many were closed."""
        for task in list(self._pending):
            task.cancel()
        count = 0
        for workspace_id, connections in list(self._connections.items()):
            for conn in list(connections):
                try:
                    await conn.close(code)
                except Exception:  # noqa: BLE001
                    logger.debug("Registry: close failed for a connection in workspace {}", workspace_id)
                count += 1
        self._connections.clear()
        return count
