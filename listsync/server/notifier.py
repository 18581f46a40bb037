"""Push-notification fallback for devices that are not live-connected.

Devices register an opaque push endpoint per workspace.  After a sync round
that changed something, every other device is signalled with a short summary
so it can wake up and sync.  Delivery is strictly best-effort:

- an endpoint reported gone (HTTP 404/410) is removed from the workspace;
- any other failure, including a timeout, is logged and dropped -- the next
  sync with changes will try again;
- nothing here ever raises into the sync path.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio
from loguru import logger

from listsync.errors import WorkspaceNotFoundError
from listsync.models.api import ChangeSet, PushPayload
from listsync.models.enums import DeliveryOutcome
from listsync.models.records import PushSubscription
from listsync.server.push import PushDeliveryError, PushEndpointGoneError

if TYPE_CHECKING:
    from listsync.server.locks import WorkspaceLocks
    from listsync.server.push import PushSender
    from listsync.server.registry import ConnectionRegistry
    from listsync.server.store.base import RecordStore


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def summarize_changes(changes: ChangeSet) -> str | None:
    """Human-readable summary such as ``"3 items and 1 list updated"``.

    Returns ``None`` when there is nothing to report.
    """
    parts = []
    if changes.items:
        parts.append(_plural(len(changes.items), "item"))
    if changes.lists:
        parts.append(_plural(len(changes.lists), "list"))
    if not parts:
        return None
    return f"{' and '.join(parts)} updated"


@dataclass
class NotifyReport:
    """What a notify pass did, per device id."""

    delivered: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class PushNotifier:
    """Owns push subscriptions and best-effort delivery to them.

    ``sender`` may be ``None`` (no VAPID key configured): subscriptions are
    still recorded, but ``notify`` does nothing.
    """

    def __init__(
        self,
        store: RecordStore,
        locks: WorkspaceLocks,
        connections: ConnectionRegistry,
        sender: PushSender | None = None,
        *,
        title: str = "Lists updated",
        icon: str | None = None,
        timeout: float = 10.0,
        skip_live_devices: bool = True,
    ) -> None:
        self._store = store
        self._locks = locks
        self._connections = connections
        self._sender = sender
        self._title = title
        self._icon = icon
        self._timeout = timeout
        self._skip_live_devices = skip_live_devices

    @property
    def enabled(self) -> bool:
        return self._sender is not None

    # -- Registration ----------------------------------------------------------

    async def register_endpoint(self, workspace_id: str, device_id: str, endpoint: dict[str, Any]) -> None:
        """Store *endpoint* for *device_id*, replacing any previous one.

        Raises ``WorkspaceNotFoundError`` if the workspace does not exist.
        """
        async with self._locks.hold(workspace_id):
            try:
                workspace = await self._store.read_workspace(workspace_id)
            except FileNotFoundError:
                raise WorkspaceNotFoundError(workspace_id) from None

            workspace.subscriptions = [s for s in workspace.subscriptions if s.device_id != device_id]
            workspace.subscriptions.append(PushSubscription(device_id=device_id, endpoint=endpoint))
            await self._store.write_workspace(workspace)

        logger.info("Push endpoint registered: workspace={} device={}", workspace_id, device_id)

    # -- Delivery --------------------------------------------------------------

    async def notify(self, workspace_id: str, exclude_device_id: str | None, summary: str) -> NotifyReport:
        """Signal every other registered device of *workspace_id*.

        Never raises.
        """
        report = NotifyReport()
        if self._sender is None:
            logger.debug("Push disabled, skipping notification for workspace {}", workspace_id)
            return report

        try:
            await self._notify(workspace_id, exclude_device_id, summary, report)
        except Exception:
            logger.exception("Push notification pass failed for workspace {}", workspace_id)
        return report

    async def _notify(
        self,
        workspace_id: str,
        exclude_device_id: str | None,
        summary: str,
        report: NotifyReport,
    ) -> None:
        try:
            workspace = await self._store.read_workspace(workspace_id)
        except FileNotFoundError:
            logger.warning("Push notification skipped: workspace {} not found", workspace_id)
            return

        live = self._connections.connected_devices(workspace_id) if self._skip_live_devices else set()
        targets = [s for s in workspace.subscriptions if s.device_id != exclude_device_id and s.device_id not in live]
        if not targets:
            return

        payload = PushPayload(title=self._title, body=summary, icon=self._icon).model_dump_json(exclude_none=True)
        outcomes = await asyncio.gather(*(self._deliver(sub, payload) for sub in targets))

        gone: list[PushSubscription] = []
        for sub, outcome in zip(targets, outcomes, strict=True):
            if outcome is DeliveryOutcome.DELIVERED:
                report.delivered.append(sub.device_id)
            elif outcome is DeliveryOutcome.GONE:
                gone.append(sub)
            else:
                report.failed.append(sub.device_id)

        if gone:
            report.removed.extend(await self._remove_subscriptions(workspace_id, gone))

        logger.info(
            "Push notification for workspace {}: delivered={} removed={} failed={}",
            workspace_id,
            len(report.delivered),
            len(report.removed),
            len(report.failed),
        )

    async def _deliver(self, subscription: PushSubscription, payload: str) -> DeliveryOutcome:
        assert self._sender is not None
        try:
            with anyio.fail_after(self._timeout):
                await self._sender.send(subscription.endpoint, payload)
        except PushEndpointGoneError:
            logger.info("Push endpoint gone for device {}, deregistering", subscription.device_id)
            return DeliveryOutcome.GONE
        except PushDeliveryError as exc:
            logger.warning("Push delivery to device {} failed: {}", subscription.device_id, exc)
            return DeliveryOutcome.FAILED
        except TimeoutError:
            logger.warning("Push delivery to device {} timed out after {}s", subscription.device_id, self._timeout)
            return DeliveryOutcome.FAILED
        except Exception:
            logger.exception("Unexpected push delivery error for device {}", subscription.device_id)
            return DeliveryOutcome.FAILED
        return DeliveryOutcome.DELIVERED

    async def _remove_subscriptions(self, workspace_id: str, gone: list[PushSubscription]) -> list[str]:
        """Drop gone subscriptions, unless the device re-registered meanwhile."""
        stale = {(s.device_id, _endpoint_key(s.endpoint)) for s in gone}
        async with self._locks.hold(workspace_id):
            try:
                workspace = await self._store.read_workspace(workspace_id)
            except FileNotFoundError:
                return []
            kept: list[PushSubscription] = []
            removed: list[str] = []
            for sub in workspace.subscriptions:
                if (sub.device_id, _endpoint_key(sub.endpoint)) in stale:
                    removed.append(sub.device_id)
                else:
                    kept.append(sub)
            if removed:
                workspace.subscriptions = kept
                await self._store.write_workspace(workspace)
        return removed


def _endpoint_key(endpoint: dict[str, Any]) -> str:
    return str(endpoint.get("endpoint", endpoint))
