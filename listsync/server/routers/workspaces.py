"""Workspace endpoints: create, resolve by code, register a push endpoint."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from listsync.errors import WorkspaceNotFoundError
from listsync.models.api import SubscribeRequest, SubscribeResponse, WorkspaceRef
from listsync.server.deps import Directory, Notifier

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.post("", response_model=WorkspaceRef)
async def create_workspace(directory: Directory) -> WorkspaceRef:
    """Create a new, empty workspace and return its id and shareable code."""
    workspace = await directory.create_workspace()
    return WorkspaceRef(id=workspace.id, code=workspace.code)


@router.get("/{code}", response_model=WorkspaceRef)
async def resolve_workspace(code: str, directory: Directory) -> WorkspaceRef:
    """Resolve a workspace code (case-insensitive)."""
    try:
        workspace = await directory.resolve_code(code)
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Workspace not found.") from None
    return WorkspaceRef(id=workspace.id, code=workspace.code)


@router.post("/{workspace_id}/subscribe", response_model=SubscribeResponse)
async def register_push_endpoint(workspace_id: str, body: SubscribeRequest, notifier: Notifier) -> SubscribeResponse:
    """Register (or replace) the calling device's push endpoint."""
    try:
        await notifier.register_endpoint(workspace_id, body.device_id, body.subscription)
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace '{workspace_id}' not found.") from None
    return SubscribeResponse(success=True)
