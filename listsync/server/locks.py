"""Per-workspace critical sections.

A sync round is a read-modify-write of the whole workspace record.  Two such
rounds (or a round and a push-endpoint registration) for the same workspace
must not interleave, while different workspaces proceed in parallel.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class WorkspaceLocks:
    """Lazily created ``asyncio.Lock`` per workspace id.

    A lock is dropped as soon as no task holds or waits for it, so the map
    only grows with the number of workspaces being written concurrently.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, workspace_id: str) -> AsyncIterator[None]:
        """Hold the exclusive lock for *workspace_id* for the ``async with`` body."""
        lock = self._locks.setdefault(workspace_id, asyncio.Lock())
        self._users[workspace_id] = self._users.get(workspace_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[workspace_id] -= 1
            if self._users[workspace_id] == 0:
                del self._users[workspace_id]
                del self._locks[workspace_id]

    def is_locked(self, workspace_id: str) -> bool:
        lock = self._locks.get(workspace_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
