"""Sync manager -- the server side of a sync round.

One round, for one workspace, inside that workspace's critical section:

1. Read the stored workspace (missing -> ``WorkspaceNotFoundError``, nothing
   touched).
2. Merge the submitted lists and items with the last-write-wins rules of
   ``listsync.merge``.
3. Collect every stored record newer than the caller's watermark.
4. Persist the workspace if anything won.

After the lock is released the winners are published to the workspace's live
connections, excluding the device that sent them.  The fan-out runs as a
background task; the response does not wait on any socket.  Push
notifications for absent devices are scheduled by the router once the
response is on its way.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from listsync.errors import WorkspaceNotFoundError
from listsync.merge import changed_since, merge_records
from listsync.models.api import ChangeSet, LiveMessage, SyncRequest, SyncResponse
from listsync.models.records import ListRecord, now_ms

if TYPE_CHECKING:
    from listsync.server.locks import WorkspaceLocks
    from listsync.server.registry import ConnectionRegistry
    from listsync.server.store.base import RecordStore


@dataclass
class SyncResult:
    """Outcome of a sync round."""

    response: SyncResponse
    changes: ChangeSet
    """Submitted records that won the merge (not the catch-up set)."""


class SyncManager:
    """Runs sync rounds against the record store.

    Instantiated once during app lifespan.  Stateless beyond its references to
    the store, the workspace locks and the connection registry.
    """

    def __init__(self, store: RecordStore, locks: WorkspaceLocks, connections: ConnectionRegistry) -> None:
        self._store = store
        self._locks = locks
        self._connections = connections

    async def sync(self, workspace_id: str, request: SyncRequest) -> SyncResult:
        """Merge a device's records into the workspace and return what it lacks.

        Raises ``WorkspaceNotFoundError`` before any mutation if the workspace
        does not exist.  Storage errors propagate; the previously persisted
        record stays authoritative.
        """
        async with self._locks.hold(workspace_id):
            try:
                workspace = await self._store.read_workspace(workspace_id)
            except FileNotFoundError:
                raise WorkspaceNotFoundError(workspace_id) from None

            incoming_lists = [rec for rec in request.lists if _acceptable_list(rec)]
            changes = ChangeSet(
                lists=merge_records(workspace.lists, incoming_lists),
                items=merge_records(workspace.items, request.items),
            )

            if changes:
                await self._store.write_workspace(workspace)

            response = SyncResponse(
                lists=changed_since(workspace.lists, request.last_sync_at),
                items=changed_since(workspace.items, request.last_sync_at),
                synced_at=now_ms(),
            )

        logger.info(
            "Sync {} from device {}: accepted {}/{} lists, {}/{} items; returning {} lists, {} items",
            workspace_id,
            request.device_id,
            len(changes.lists),
            len(request.lists),
            len(changes.items),
            len(request.items),
            len(response.lists),
            len(response.items),
        )

        if changes:
            self._connections.publish(
                workspace_id,
                LiveMessage(changes=changes),
                exclude_device_id=request.device_id,
            )

        return SyncResult(response=response, changes=changes)


def _acceptable_list(record: ListRecord) -> bool:
    """Built-in lists can be edited but never tombstoned."""
    if record.is_protected and record.is_deleted:
        logger.warning("Discarding deletion of built-in list '{}'", record.id)
        return False
    return True
