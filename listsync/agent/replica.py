"""Local replica of one device.

Holds the device's copy of the workspace's lists and items, the device id,
the joined workspace with its sync watermark, and the ids of records changed
locally but not yet acknowledged by the server ("dirty").  The whole replica
is persisted to a single JSON file with the same temp-file-and-rename write
the server uses for workspace records.
"""

from __future__ import annotations

import uuid
from functools import partial
from pathlib import Path

from anyio import to_thread
from loguru import logger
from pydantic import Field

from listsync.fileio import atomic_write, read_file
from listsync.merge import is_newer
from listsync.models.api import ChangeSet
from listsync.models.records import CamelModel, ItemRecord, ListRecord, default_lists


class WorkspaceLink(CamelModel):
    """The workspace this device has joined, and how far it has synced."""

    id: str
    code: str
    last_sync_at: int = 0


class ReplicaState(CamelModel):
    """Persisted form of a replica."""

    device_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workspace: WorkspaceLink | None = None
    lists: list[ListRecord] = Field(default_factory=default_lists)
    items: list[ItemRecord] = Field(default_factory=list)
    dirty_lists: list[str] = Field(default_factory=list)
    dirty_items: list[str] = Field(default_factory=list)


class LocalReplica:
    """In-memory replica with optional JSON-file persistence.

    Not safe for concurrent mutation from several threads; the sync agent
    serialises applies on its event loop.
    """

    def __init__(self, state: ReplicaState | None = None, path: str | Path | None = None) -> None:
        state = state or ReplicaState()
        self._path = Path(path) if path is not None else None
        self.device_id = state.device_id
        self.workspace = state.workspace
        self._lists: dict[str, ListRecord] = {rec.id: rec for rec in state.lists}
        self._items: dict[str, ItemRecord] = {rec.id: rec for rec in state.items}
        self._dirty_lists: set[str] = set(state.dirty_lists)
        self._dirty_items: set[str] = set(state.dirty_items)

    # -- Persistence -----------------------------------------------------------

    @classmethod
    async def open(cls, path: str | Path) -> LocalReplica:
        """Load the replica stored at *path*, or start a fresh one there."""
        path = Path(path)
        try:
            raw = await to_thread.run_sync(partial(read_file, path))
        except FileNotFoundError:
            replica = cls(path=path)
            await replica.save()
            logger.info("Replica created at {} (device={})", path, replica.device_id)
            return replica
        return cls(ReplicaState.model_validate_json(raw), path=path)

    def snapshot(self) -> ReplicaState:
        return ReplicaState(
            device_id=self.device_id,
            workspace=self.workspace,
            lists=list(self._lists.values()),
            items=list(self._items.values()),
            dirty_lists=sorted(self._dirty_lists),
            dirty_items=sorted(self._dirty_items),
        )

    async def save(self) -> None:
        """Persist to disk.  No-op for an in-memory replica."""
        if self._path is None:
            return
        data = self.snapshot().model_dump_json(by_alias=True, indent=2)
        await to_thread.run_sync(partial(atomic_write, self._path, data))

    # -- Reads -----------------------------------------------------------------

    def get_list(self, list_id: str) -> ListRecord | None:
        return self._lists.get(list_id)

    def get_item(self, item_id: str) -> ItemRecord | None:
        return self._items.get(item_id)

    def all_lists(self) -> list[ListRecord]:
        """Every list including tombstones."""
        return list(self._lists.values())

    def all_items(self) -> list[ItemRecord]:
        """Every item including tombstones."""
        return list(self._items.values())

    # -- Local writes ----------------------------------------------------------

    def put_list(self, record: ListRecord) -> None:
        """Store a locally modified list and mark it for upload."""
        self._lists[record.id] = record
        self._dirty_lists.add(record.id)

    def put_item(self, record: ItemRecord) -> None:
        """Store a locally modified item and mark it for upload."""
        self._items[record.id] = record
        self._dirty_items.add(record.id)

    # -- Sync bookkeeping ------------------------------------------------------

    def pending_changes(self) -> ChangeSet:
        """Copies of every record not yet acknowledged by the server."""
        return ChangeSet(
            lists=[self._lists[i].model_copy() for i in sorted(self._dirty_lists) if i in self._lists],
            items=[self._items[i].model_copy() for i in sorted(self._dirty_items) if i in self._items],
        )

    def acknowledge(self, sent: ChangeSet) -> None:
        """Clear dirty marks for sent records that have not changed since."""
        for rec in sent.lists:
            current = self._lists.get(rec.id)
            if current is None or current.updated_at == rec.updated_at:
                self._dirty_lists.discard(rec.id)
        for rec in sent.items:
            current = self._items.get(rec.id)
            if current is None or current.updated_at == rec.updated_at:
                self._dirty_items.discard(rec.id)

    def apply_changes(self, changes: ChangeSet) -> int:
        """Apply remote records with the last-write-wins rule.

        A locally newer record is never regressed.  Returns the number of
        records that were taken.
        """
        applied = 0
        for rec in changes.lists:
            if is_newer(rec, self._lists.get(rec.id)):
                self._lists[rec.id] = rec
                self._dirty_lists.discard(rec.id)
                applied += 1
        for rec in changes.items:
            if is_newer(rec, self._items.get(rec.id)):
                self._items[rec.id] = rec
                self._dirty_items.discard(rec.id)
                applied += 1
        return applied

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._dirty_lists or self._dirty_items)

    def reset(self) -> None:
        """Forget the workspace and all records; keep the device id."""
        self.workspace = None
        self._lists = {rec.id: rec for rec in default_lists()}
        self._items = {}
        self._dirty_lists.clear()
        self._dirty_items.clear()
