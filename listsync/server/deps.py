"""FastAPI dependency injection for the process-level service objects.

The lifespan builds the directory, sync manager and notifier once and parks
them on ``app.state``; route handlers receive them through the annotated
aliases below::

    @router.post("/{workspace_id}")
    async def sync_workspace(workspace_id: str, manager: SyncMgr) -> ...:
        ...

Dependencies raise HTTP 503 if the service has not been initialised.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from listsync.server.managers.sync import SyncManager
from listsync.server.managers.workspaces import WorkspaceDirectory
from listsync.server.notifier import PushNotifier


def _require(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Service not initialised ({name} is unset).",
        )
    return value


def get_directory(request: Request) -> WorkspaceDirectory:
    return _require(request, "directory")


def get_sync_manager(request: Request) -> SyncManager:
    return _require(request, "sync_manager")


def get_notifier(request: Request) -> PushNotifier:
    return _require(request, "notifier")


# -- Annotated type aliases for concise route signatures ---------------------

Directory = Annotated[WorkspaceDirectory, Depends(get_directory)]
"""Annotated dependency: workspace directory (create / resolve)."""

SyncMgr = Annotated[SyncManager, Depends(get_sync_manager)]
"""Annotated dependency: sync manager (merge rounds)."""

Notifier = Annotated[PushNotifier, Depends(get_notifier)]
"""Annotated dependency: push notifier (subscriptions and delivery)."""