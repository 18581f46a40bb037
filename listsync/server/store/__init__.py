"""Record store implementations for workspace persistence."""

from listsync.server.store.base import RecordStore
from listsync.server.store.local import LocalRecordStore

__all__ = ["LocalRecordStore", "RecordStore"]
