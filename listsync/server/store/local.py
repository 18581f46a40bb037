"""Local filesystem record store.

Stores each workspace as one JSON file under a data root with optional
namespace prefix::

    {data_root}/{prefix}/workspaces/{workspace_id}.json
    {data_root}/{prefix}/codes/{CODE}

When prefix is None, the paths collapse to::

    {data_root}/workspaces/{workspace_id}.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path.  A crash mid-write leaves the previous
record in place.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path

from anyio import to_thread

from listsync.fileio import atomic_write, read_file
from listsync.models.records import WorkspaceRecord
from listsync.server.store.base import is_valid_key


class LocalRecordStore:
    """Local filesystem implementation of the RecordStore protocol.

    Where the base directory is ``data_root / prefix`` (or just ``data_root``
    if no prefix).
    """

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._workspaces = base / "workspaces"
        self._codes = base / "codes"

    def _workspace_path(self, workspace_id: str) -> Path:
        if not is_valid_key(workspace_id):
            msg = f"Invalid workspace id: {workspace_id!r}"
            raise FileNotFoundError(msg)
        return self._workspaces / f"{workspace_id}.json"

    def _code_path(self, code: str) -> Path:
        if not is_valid_key(code):
            msg = f"Invalid workspace code: {code!r}"
            raise FileNotFoundError(msg)
        return self._codes / code

    # -- Workspaces ------------------------------------------------------------

    async def write_workspace(self, workspace: WorkspaceRecord) -> None:
        data = workspace.model_dump_json(by_alias=True, indent=2)
        await to_thread.run_sync(partial(atomic_write, self._workspace_path(workspace.id), data))

    async def read_workspace(self, workspace_id: str) -> WorkspaceRecord:
        path = self._workspace_path(workspace_id)
        raw = await to_thread.run_sync(partial(read_file, path))
        return WorkspaceRecord.model_validate_json(raw)

    async def exists(self, workspace_id: str) -> bool:
        try:
            path = self._workspace_path(workspace_id)
        except FileNotFoundError:
            return False
        return await to_thread.run_sync(path.exists)

    async def list_workspace_ids(self) -> list[str]:
        return await to_thread.run_sync(partial(_list_stems, self._workspaces, ".json"))

    # -- Code index ------------------------------------------------------------

    async def write_code(self, code: str, workspace_id: str) -> None:
        await to_thread.run_sync(partial(atomic_write, self._code_path(code), workspace_id))

    async def read_code(self, code: str) -> str:
        raw = await to_thread.run_sync(partial(read_file, self._code_path(code)))
        return raw.strip()


# -- Sync helpers (run in thread pool) -----------------------------------------


def _list_stems(directory: Path, suffix: str) -> list[str]:
    if not directory.is_dir():
        return []
    return sorted(p.stem for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix))
