"""Record store interface for workspace persistence.

Each workspace is one durable record holding its lists, items and push
subscriptions.  A sync round rewrites the whole record in a single atomic
operation, so a reader never observes half of a merge.

Alongside the records the store keeps a code -> workspace id index, written
when a workspace is created and consulted when a device pairs by code.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from listsync.models.records import WorkspaceRecord


@runtime_checkable
class RecordStore(Protocol):
    """Async protocol for reading and writing workspace records.

    Storage layout::

        {root}/workspaces/{workspace_id}.json
        {root}/codes/{CODE}
    """

    async def write_workspace(self, workspace: WorkspaceRecord) -> None:
        """Atomically replace the stored record for ``workspace.id``."""
        ...

    async def read_workspace(self, workspace_id: str) -> WorkspaceRecord:
        """Read a workspace.  Raises ``FileNotFoundError`` if not found."""
        ...

    async def exists(self, workspace_id: str) -> bool:
        """Check whether a workspace record exists."""
        ...

    async def write_code(self, code: str, workspace_id: str) -> None:
        """Point the (upper-case) *code* at *workspace_id*."""
        ...

    async def read_code(self, code: str) -> str:
        """Resolve an upper-case code.  Raises ``FileNotFoundError`` if unknown."""
        ...

    async def list_workspace_ids(self) -> list[str]:
        """Return the ids of every stored workspace."""
        ...


_KEY_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")


def is_valid_key(key: str) -> bool:
    """Whether *key* is safe to use as a file name or object key segment."""
    return 0 < len(key) <= 64 and all(c in _KEY_CHARS for c in key)
