"""Last-write-wins merge rules.

Shared by the server's sync operation and the client's local apply step so
that both sides resolve conflicts identically:

- a record unknown to the receiver is inserted;
- a record whose ``updated_at`` is *strictly* greater replaces the held copy;
- anything else is discarded.

Equal timestamps keep the copy already held, which makes re-sending the same
record a no-op.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from listsync.models.records import SyncRecord, now_ms

R = TypeVar("R", bound=SyncRecord)


def is_newer(incoming: SyncRecord, existing: SyncRecord | None) -> bool:
    """Return ``True`` if *incoming* should replace *existing*."""
    if existing is None:
        return True
    return incoming.updated_at > existing.updated_at


def merge_records(stored: list[R], incoming: Iterable[R]) -> list[R]:
    """Apply *incoming* onto *stored* in place and return the winners.

    Records are processed in submission order, so a duplicate id later in the
    batch is compared against whichever copy won earlier.  New records are
    appended; replaced records keep their position.
    """
    index = {record.id: pos for pos, record in enumerate(stored)}
    winners: list[R] = []
    for record in incoming:
        pos = index.get(record.id)
        if pos is None:
            index[record.id] = len(stored)
            stored.append(record)
            winners.append(record)
        elif is_newer(record, stored[pos]):
            stored[pos] = record
            winners.append(record)
    return winners


def changed_since(records: Iterable[R], since: int) -> list[R]:
    """Records modified after the *since* watermark."""
    return [record for record in records if record.updated_at > since]


class MonotonicClock:
    """Millisecond timestamps that never go backwards.

    Wall-clock derived, but each tick is strictly greater than the previous
    one and than any ``after`` bound the caller supplies (typically the
    ``updated_at`` of the record being modified).
    """

    def __init__(self) -> None:
        self._last = 0

    def tick(self, after: int = 0) -> int:
        stamp = max(now_ms(), self._last + 1, after + 1)
        self._last = stamp
        return stamp
