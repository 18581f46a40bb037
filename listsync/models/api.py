"""API request / response schemas.

These sit between HTTP (and the live WebSocket channel) and the managers.
Field names follow the camelCase wire contract via ``CamelModel``.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from listsync.models.enums import LiveMessageType
from listsync.models.records import CamelModel, ItemRecord, ListRecord

# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class WorkspaceRef(CamelModel):
    """Public handle of a workspace: its id and its shareable code."""

    id: str
    code: str


class SubscribeRequest(CamelModel):
    device_id: str
    subscription: dict[str, Any] = Field(description="Web Push subscription as produced by PushSubscription.toJSON().")


class SubscribeResponse(CamelModel):
    success: bool = True


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class ChangeSet(CamelModel):
    """A batch of list and item records."""

    lists: list[ListRecord] = Field(default_factory=list)
    items: list[ItemRecord] = Field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.lists or self.items)


class SyncRequest(CamelModel):
    device_id: str
    last_sync_at: int = Field(default=0, description="Caller's watermark; records newer than this are returned.")
    lists: list[ListRecord] = Field(default_factory=list)
    items: list[ItemRecord] = Field(default_factory=list)


class SyncResponse(CamelModel):
    lists: list[ListRecord] = Field(default_factory=list)
    items: list[ItemRecord] = Field(default_factory=list)
    synced_at: int


class LiveMessage(CamelModel):
    """Server-to-client message on the live channel."""

    type: LiveMessageType = LiveMessageType.SYNC
    changes: ChangeSet = Field(default_factory=ChangeSet)


class PushPayload(CamelModel):
    """Payload delivered to a push endpoint."""

    title: str
    body: str
    icon: str | None = None
