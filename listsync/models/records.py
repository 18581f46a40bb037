"""Replicated record models.

Lists and items are the two replicated record kinds.  Every record carries an
``updated_at`` millisecond timestamp, the only field consulted for conflict
resolution.  Deletion is expressed as a tombstone (``deleted_at`` set) so that
it propagates to other replicas like any other write.

Wire and persisted JSON use camelCase keys (``updatedAt``, ``listId``) while
Python code uses snake_case attributes.
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PROTECTED_LIST_IDS: frozenset[str] = frozenset({"inbox", "todo", "shopping", "ideas"})
"""Built-in list ids that can never be deleted."""

DEFAULT_LIST_ID = "inbox"

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
"""Workspace code symbols; I, O, 0 and 1 are left out to avoid misreading."""

CODE_LENGTH = 8


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def normalize_code(code: str) -> str:
    """Canonical form of a user-typed workspace code (codes are case-insensitive)."""
    return code.strip().upper()


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncRecord(CamelModel):
    """Common shape of a replicated record.

    Unknown fields sent by a client are kept and round-tripped: records are
    replaced as a whole, never merged field by field.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    updated_at: int = 0
    deleted_at: int | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ListRecord(SyncRecord):
    name: str = ""
    icon: str = "folder"
    color: str = "#64748b"
    order: int = 0
    description: str | None = None

    @property
    def is_protected(self) -> bool:
        return self.id in PROTECTED_LIST_IDS


class ItemRecord(SyncRecord):
    list_id: str = DEFAULT_LIST_ID
    text: str = ""
    completed: bool = False
    created_at: int = 0


class PushSubscription(CamelModel):
    """A device's push delivery endpoint within one workspace."""

    device_id: str
    endpoint: dict[str, Any] = Field(description="Opaque Web Push subscription descriptor.")


class WorkspaceRecord(CamelModel):
    """The single durable record holding a workspace's full state."""

    id: str
    code: str
    created_at: int = Field(default_factory=now_ms)
    lists: list[ListRecord] = Field(default_factory=list)
    items: list[ItemRecord] = Field(default_factory=list)
    subscriptions: list[PushSubscription] = Field(default_factory=list)


def default_lists() -> list[ListRecord]:
    """Built-in lists every fresh replica starts with."""
    return [
        ListRecord(
            id="inbox",
            name="Inbox",
            icon="inbox",
            color="#64748b",
            order=0,
            description="Uncategorized items and quick captures",
        ),
        ListRecord(
            id="todo",
            name="To-Do",
            icon="check-circle",
            color="#22c55e",
            order=1,
            description="Tasks and action items to complete",
        ),
        ListRecord(
            id="shopping",
            name="Shopping",
            icon="shopping-cart",
            color="#f97316",
            order=2,
            description="Things to buy - groceries, household items, etc.",
        ),
        ListRecord(
            id="ideas",
            name="Ideas",
            icon="lightbulb",
            color="#eab308",
            order=3,
            description="Creative ideas, thoughts, and inspiration",
        ),
    ]
