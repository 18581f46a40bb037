"""Workspace directory: creation and code resolution.

A workspace is addressed by an opaque UUID internally and by a short,
human-typable code when a new device pairs.  Codes are kept in an index next
to the workspace records so resolution does not scan the store.
"""

from __future__ import annotations

import secrets
import uuid
from typing import TYPE_CHECKING

from loguru import logger

from listsync.errors import WorkspaceNotFoundError
from listsync.models.records import CODE_ALPHABET, CODE_LENGTH, WorkspaceRecord, normalize_code

if TYPE_CHECKING:
    from listsync.server.store.base import RecordStore

_MAX_CODE_ATTEMPTS = 5


def generate_code(length: int = CODE_LENGTH) -> str:
    """Return a random workspace code drawn from ``CODE_ALPHABET``."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class WorkspaceDirectory:
    """Creates workspaces and maps codes to them."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def create_workspace(self) -> WorkspaceRecord:
        """Create and persist an empty workspace with a fresh id and code."""
        code = await self._unused_code()
        workspace = WorkspaceRecord(id=str(uuid.uuid4()), code=code)

        # Record first, then index: an index entry never points at nothing.
        await self._store.write_workspace(workspace)
        await self._store.write_code(code, workspace.id)

        logger.info("Workspace created: {} (code={})", workspace.id, code)
        return workspace

    async def resolve_code(self, code: str) -> WorkspaceRecord:
        """Look a workspace up by code, case-insensitively.

        Raises ``WorkspaceNotFoundError`` if the code is unknown or malformed.
        """
        normalized = normalize_code(code)
        try:
            workspace_id = await self._store.read_code(normalized)
            return await self._store.read_workspace(workspace_id)
        except FileNotFoundError:
            raise WorkspaceNotFoundError(code) from None

    async def get_workspace(self, workspace_id: str) -> WorkspaceRecord:
        """Get a workspace by id.  Raises ``WorkspaceNotFoundError`` if missing."""
        try:
            return await self._store.read_workspace(workspace_id)
        except FileNotFoundError:
            raise WorkspaceNotFoundError(workspace_id) from None

    async def exists(self, workspace_id: str) -> bool:
        return await self._store.exists(workspace_id)

    async def rebuild_code_index(self) -> int:
        """Rewrite the code index from the stored workspaces.

        Returns the number of index entries written.
        """
        count = 0
        for workspace_id in await self._store.list_workspace_ids():
            try:
                workspace = await self._store.read_workspace(workspace_id)
            except FileNotFoundError:
                continue
            await self._store.write_code(normalize_code(workspace.code), workspace.id)
            count += 1
        logger.info("Code index rebuilt: {} workspaces", count)
        return count

    async def _unused_code(self) -> str:
        code = generate_code()
        for _ in range(_MAX_CODE_ATTEMPTS - 1):
            try:
                await self._store.read_code(code)
            except FileNotFoundError:
                return code
            logger.debug("Workspace code collision on {}, regenerating", code)
            code = generate_code()
        return code
