"""Sync agent -- one device's side of synchronization.

The agent owns a ``LocalReplica`` and keeps it converged with the server
through two paths:

- **catch-up** (``sync``): upload the records changed locally, apply whatever
  the server has that is newer than the watermark, advance the watermark.
  Triggered by every local mutation, by (re)connecting the live channel,
  by coming back online and, optionally, by a periodic timer.
- **live** (``handle_live_message``): the server pushes other devices'
  accepted writes over a WebSocket; they are applied immediately.

Both paths apply remote records with the same last-write-wins rule as the
server, serialised by one lock so two applies never interleave.  Local
mutations always succeed locally first; a failed sync never rolls them back,
the records simply stay dirty until a later sync is acknowledged.

Live channel state machine::

    disconnected -> connecting -> connected
         ^              |            |
         +--- (delay) --+------------+   on error / close

The reconnect delay doubles from ``reconnect_delay`` up to
``reconnect_max_delay`` and resets after a successful connect.  The loop ends
when the device leaves the workspace or the agent is closed.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import AsyncIterable, Callable, Coroutine
from contextlib import AbstractAsyncContextManager
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

from listsync.agent.replica import LocalReplica, WorkspaceLink
from listsync.agent.settings import AgentSettings
from listsync.errors import WorkspaceNotFoundError
from listsync.merge import MonotonicClock
from listsync.models.api import ChangeSet, LiveMessage, SubscribeRequest, SyncRequest, SyncResponse, WorkspaceRef
from listsync.models.enums import ConnectionState, LiveMessageType
from listsync.models.records import DEFAULT_LIST_ID, ItemRecord, ListRecord, normalize_code

ConnectFactory = Callable[[str], AbstractAsyncContextManager[AsyncIterable[str | bytes]]]
"""Opens a live connection to a ``ws://`` URL; iterating it yields messages."""


class ProtectedListError(ValueError):
    """Raised when deleting one of the built-in lists."""


def _ws_base(http_base: str) -> str:
    base = http_base.rstrip("/")
    if base.startswith("https://"):
        return "wss://" + base.removeprefix("https://")
    if base.startswith("http://"):
        return "ws://" + base.removeprefix("http://")
    return base


class SyncAgent:
    """Keeps one device's replica in sync with a workspace on the server."""

    def __init__(
        self,
        replica: LocalReplica,
        http: httpx.AsyncClient,
        *,
        live: bool = True,
        live_url: str | None = None,
        connect: ConnectFactory | None = None,
        reconnect_delay: float = 5.0,
        reconnect_max_delay: float = 60.0,
        resync_interval: float = 0.0,
        on_sync_complete: Callable[[], None] | None = None,
    ) -> None:
        self.replica = replica
        self.on_sync_complete = on_sync_complete
        self._http = http
        self._owns_http = False
        self._live_enabled = live
        self._live_base = live_url.rstrip("/") if live_url else _ws_base(str(http.base_url))
        self._connect: ConnectFactory = connect if connect is not None else ws_connect
        self._reconnect_delay = reconnect_delay
        self._reconnect_max_delay = reconnect_max_delay
        self._resync_interval = resync_interval

        self._clock = MonotonicClock()
        self._apply_lock = asyncio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._online = True
        self._syncing = False
        self._closed = False
        self._live_task: asyncio.Task[None] | None = None
        self._resync_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_settings(cls, settings: AgentSettings, replica: LocalReplica, **kwargs: Any) -> SyncAgent:
        """Build an agent that owns its HTTP client (closed by ``close``)."""
        http = httpx.AsyncClient(base_url=settings.server_url, timeout=settings.request_timeout)
        agent = cls(
            replica,
            http,
            reconnect_delay=settings.reconnect_delay,
            reconnect_max_delay=settings.reconnect_max_delay,
            resync_interval=settings.resync_interval,
            **kwargs,
        )
        agent._owns_http = True
        return agent

    # -- Status ----------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def workspace(self) -> WorkspaceLink | None:
        return self.replica.workspace

    # -- Workspace membership --------------------------------------------------

    async def create_workspace(self) -> WorkspaceLink:
        """Create a workspace on the server and join it."""
        resp = await self._http.post("/api/workspaces")
        resp.raise_for_status()
        link = await self._link(WorkspaceRef.model_validate(resp.json()))
        await self.sync()
        return link

    async def join_workspace(self, code: str) -> WorkspaceLink:
        """Join the workspace behind *code* and pull its contents.

        Raises ``WorkspaceNotFoundError`` if the server does not know the code.
        """
        resp = await self._http.get(f"/api/workspaces/{quote(normalize_code(code))}")
        if resp.status_code == httpx.codes.NOT_FOUND:
            raise WorkspaceNotFoundError(code)
        resp.raise_for_status()
        link = await self._link(WorkspaceRef.model_validate(resp.json()))
        await self.sync()
        return link

    async def leave_workspace(self) -> None:
        """Stop syncing and clear the local replica back to the built-in lists."""
        await self.stop()
        async with self._apply_lock:
            self.replica.reset()
            await self.replica.save()
        logger.info("Left workspace; local replica cleared")

    async def _link(self, ref: WorkspaceRef) -> WorkspaceLink:
        await self.stop()
        async with self._apply_lock:
            self.replica.workspace = WorkspaceLink(id=ref.id, code=ref.code)
            await self.replica.save()
        logger.info("Joined workspace {} (code={})", ref.id, ref.code)
        self.start()
        return self.replica.workspace

    async def subscribe_push(self, subscription: dict[str, Any]) -> bool:
        """Register this device's push endpoint with the server."""
        link = self.replica.workspace
        if link is None:
            return False
        body = SubscribeRequest(device_id=self.replica.device_id, subscription=subscription)
        try:
            resp = await self._http.post(
                f"/api/workspaces/{link.id}/subscribe",
                json=body.model_dump(mode="json", by_alias=True),
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Push subscription failed: {}", exc)
            return False
        logger.info("Push subscription registered for device {}", self.replica.device_id)
        return True

    # -- Connectivity ----------------------------------------------------------

    async def set_online(self, online: bool) -> None:
        """Record network availability; coming back online triggers a sync."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Back online, syncing")
            await self.sync()

    # -- Catch-up sync ---------------------------------------------------------

    async def sync(self) -> bool:
        """Run one sync round.

        Returns ``False`` without doing anything if the device is offline or
        no workspace is joined, and ``False`` if the round failed.  Local state
        (including the watermark) only changes on a confirmed response.

        Rounds are single-flight: a call made while one is in flight returns
        ``False`` at once and is dropped, not queued.  Changes made meanwhile
        stay dirty and go out with the next round.
        """
        link = self.replica.workspace
        if link is None or not self._online:
            return False
        if self._syncing:
            return False

        self._syncing = True
        try:
            return await self._sync_round(link)
        finally:
            self._syncing = False
            self._sync_complete()

    async def _sync_round(self, link: WorkspaceLink) -> bool:
        pending = self.replica.pending_changes()
        request = SyncRequest(
            device_id=self.replica.device_id,
            last_sync_at=link.last_sync_at,
            lists=pending.lists,
            items=pending.items,
        )
        try:
            resp = await self._http.post(
                f"/api/sync/{link.id}",
                json=request.model_dump(mode="json", by_alias=True),
            )
            resp.raise_for_status()
            result = SyncResponse.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Sync with workspace {} failed: {}", link.id, exc)
            return False

        async with self._apply_lock:
            current = self.replica.workspace
            if current is None or current.id != link.id:
                # Left (or switched) while the request was in flight.
                return False
            self.replica.acknowledge(pending)
            applied = self.replica.apply_changes(ChangeSet(lists=result.lists, items=result.items))
            current.last_sync_at = result.synced_at
            await self.replica.save()

        logger.info(
            "Synced workspace {}: sent {} lists, {} items; applied {} records (watermark={})",
            link.id,
            len(pending.lists),
            len(pending.items),
            applied,
            result.synced_at,
        )
        return True

    def request_sync(self) -> asyncio.Task[bool]:
        """Start a sync in the background (fire-and-forget)."""
        return self._spawn(self.sync())

    # -- Live channel ----------------------------------------------------------

    async def handle_live_message(self, raw: str | bytes) -> int:
        """Apply a message pushed over the live channel.

        Returns the number of records taken from it.
        """
        try:
            message = LiveMessage.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed live message")
            return 0
        if message.type is not LiveMessageType.SYNC:
            return 0

        async with self._apply_lock:
            applied = self.replica.apply_changes(message.changes)
            if applied:
                await self.replica.save()

        logger.debug("Live update: applied {} records", applied)
        self._sync_complete()
        return applied

    def start(self) -> None:
        """Start the live channel and periodic resync, if configured."""
        if self._closed or self.replica.workspace is None:
            return
        if self._live_enabled and (self._live_task is None or self._live_task.done()):
            self._live_task = asyncio.create_task(self._live_loop())
        if self._resync_interval > 0 and (self._resync_task is None or self._resync_task.done()):
            self._resync_task = asyncio.create_task(self._resync_loop())

    async def stop(self) -> None:
        """Stop the live channel and periodic resync."""
        for task in (self._live_task, self._resync_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._live_task = None
        self._resync_task = None
        self._state = ConnectionState.DISCONNECTED

    def _live_url(self, link: WorkspaceLink) -> str:
        return f"{self._live_base}/ws/{quote(link.id)}?deviceId={quote(self.replica.device_id)}"

    async def _live_loop(self) -> None:
        failures = 0
        while not self._closed:
            link = self.replica.workspace
            if link is None:
                break

            self._state = ConnectionState.CONNECTING
            try:
                async with self._connect(self._live_url(link)) as conn:
                    self._state = ConnectionState.CONNECTED
                    failures = 0
                    logger.info("Live channel connected (workspace={})", link.id)
                    self.request_sync()
                    async for raw in conn:
                        await self.handle_live_message(raw)
                logger.info("Live channel closed by server")
            except (OSError, TimeoutError, WebSocketException) as exc:
                logger.info("Live channel dropped: {!r}", exc)
            finally:
                self._state = ConnectionState.DISCONNECTED

            if self._closed or self.replica.workspace is None:
                break
            delay = min(self._reconnect_delay * (2**failures), self._reconnect_max_delay)
            failures += 1
            logger.debug("Reconnecting live channel in {:.1f}s", delay)
            await asyncio.sleep(delay)

    async def _resync_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._resync_interval)
            try:
                await self.sync()
            except Exception:
                logger.exception("Periodic sync failed")

    # -- Local mutations -------------------------------------------------------

    async def add_item(self, list_id: str, text: str) -> ItemRecord:
        now = self._clock.tick()
        item = ItemRecord(
            id=str(uuid.uuid4()),
            list_id=list_id,
            text=text,
            completed=False,
            created_at=now,
            updated_at=now,
        )
        await self._commit(items=[item])
        return item

    async def update_item(self, item_id: str, **changes: Any) -> ItemRecord | None:
        """Replace fields of an item.  Returns ``None`` for unknown or deleted items."""
        item = self.replica.get_item(item_id)
        if item is None or item.is_deleted:
            return None
        updated = self._touch(item, changes)
        await self._commit(items=[updated])
        return updated

    async def toggle_item(self, item_id: str) -> ItemRecord | None:
        item = self.replica.get_item(item_id)
        if item is None:
            return None
        return await self.update_item(item_id, completed=not item.completed)

    async def move_item(self, item_id: str, list_id: str) -> ItemRecord | None:
        return await self.update_item(item_id, list_id=list_id)

    async def delete_item(self, item_id: str) -> ItemRecord | None:
        """Tombstone an item so the deletion reaches other devices."""
        item = self.replica.get_item(item_id)
        if item is None or item.is_deleted:
            return None
        stamp = self._clock.tick(item.updated_at)
        tombstone = item.model_copy(update={"deleted_at": stamp, "updated_at": stamp})
        await self._commit(items=[tombstone])
        return tombstone

    async def clear_completed(self, list_id: str) -> int:
        """Tombstone every completed item of a list.  Returns how many."""
        cleared = []
        for item in self.active_items(list_id):
            if item.completed:
                stamp = self._clock.tick(item.updated_at)
                cleared.append(item.model_copy(update={"deleted_at": stamp, "updated_at": stamp}))
        if cleared:
            await self._commit(items=cleared)
        return len(cleared)

    async def add_list(
        self,
        name: str,
        icon: str = "folder",
        color: str = "#64748b",
        description: str | None = None,
    ) -> ListRecord:
        record = ListRecord(
            id=str(uuid.uuid4()),
            name=name,
            icon=icon,
            color=color,
            order=len(self.active_lists()),
            description=description,
            updated_at=self._clock.tick(),
        )
        await self._commit(lists=[record])
        return record

    async def update_list(self, list_id: str, **changes: Any) -> ListRecord | None:
        record = self.replica.get_list(list_id)
        if record is None or record.is_deleted:
            return None
        updated = self._touch(record, changes)
        await self._commit(lists=[updated])
        return updated

    async def delete_list(self, list_id: str) -> None:
        """Delete a list, moving its items to the inbox.

        Raises ``ProtectedListError`` for the built-in lists.
        """
        record = self.replica.get_list(list_id)
        if record is not None and record.is_protected:
            raise ProtectedListError(list_id)
        if record is None or record.is_deleted:
            return

        moved = [self._touch(item, {"list_id": DEFAULT_LIST_ID}) for item in self.active_items(list_id)]
        stamp = self._clock.tick(record.updated_at)
        tombstone = record.model_copy(update={"deleted_at": stamp, "updated_at": stamp})
        await self._commit(lists=[tombstone], items=moved)

    def _touch(self, record: Any, changes: dict[str, Any]) -> Any:
        stamp = self._clock.tick(record.updated_at)
        return record.model_copy(update={**changes, "updated_at": stamp})

    async def _commit(self, lists: list[ListRecord] | None = None, items: list[ItemRecord] | None = None) -> None:
        async with self._apply_lock:
            for record in lists or ():
                self.replica.put_list(record)
            for item in items or ():
                self.replica.put_item(item)
            await self.replica.save()
        self.request_sync()

    # -- Reads -----------------------------------------------------------------

    def active_lists(self) -> list[ListRecord]:
        """Lists that are not deleted, in display order."""
        return sorted((rec for rec in self.replica.all_lists() if not rec.is_deleted), key=lambda rec: rec.order)

    def active_items(self, list_id: str | None = None) -> list[ItemRecord]:
        """Live items, incomplete first, then newest first."""
        items = [
            item
            for item in self.replica.all_items()
            if not item.is_deleted and (list_id is None or item.list_id == list_id)
        ]
        return sorted(items, key=lambda item: (item.completed, -item.created_at))

    # -- Lifecycle -------------------------------------------------------------

    async def wait_for_pending(self) -> None:
        """Wait for background syncs started so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        await self.stop()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._owns_http:
            await self._http.aclose()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Background sync task failed")

    def _sync_complete(self) -> None:
        if self.on_sync_complete is not None:
            self.on_sync_complete()
