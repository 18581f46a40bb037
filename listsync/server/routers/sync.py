"""Sync endpoint.

Thin HTTP adapter -- delegates the merge to the sync manager and schedules the
push-notification pass to run after the response has been sent.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from listsync.errors import WorkspaceNotFoundError
from listsync.models.api import SyncRequest, SyncResponse
from listsync.server.deps import Notifier, SyncMgr
from listsync.server.notifier import summarize_changes

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/{workspace_id}", response_model=SyncResponse)
async def sync_workspace(
    workspace_id: str,
    body: SyncRequest,
    manager: SyncMgr,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
) -> SyncResponse:
    try:
        result = await manager.sync(workspace_id, body)
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace '{workspace_id}' not found.") from None

    summary = summarize_changes(result.changes)
    if summary is not None and notifier.enabled:
        background_tasks.add_task(notifier.notify, workspace_id, body.device_id, summary)

    return result.response
