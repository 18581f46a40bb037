"""Data models shared by the sync server and the sync agent."""

from listsync.models.api import (
    ChangeSet,
    LiveMessage,
    PushPayload,
    SubscribeRequest,
    SubscribeResponse,
    SyncRequest,
    SyncResponse,
    WorkspaceRef,
)
from listsync.models.enums import ConnectionState, DeliveryOutcome, LiveMessageType
from listsync.models.records import (
    DEFAULT_LIST_ID,
    PROTECTED_LIST_IDS,
    ItemRecord,
    ListRecord,
    PushSubscription,
    SyncRecord,
    WorkspaceRecord,
    default_lists,
    now_ms,
)

__all__ = [
    "DEFAULT_LIST_ID",
    "PROTECTED_LIST_IDS",
    # API schemas
    "ChangeSet",
    # Enums
    "ConnectionState",
    "DeliveryOutcome",
    # Records
    "ItemRecord",
    "ListRecord",
    "LiveMessage",
    "LiveMessageType",
    "PushPayload",
    "PushSubscription",
    "SubscribeRequest",
    "SubscribeResponse",
    "SyncRecord",
    "SyncRequest",
    "SyncResponse",
    "WorkspaceRecord",
    "WorkspaceRef",
    "default_lists",
    "now_ms",
]
