"""Client-side sync agent: local replica plus live and catch-up sync."""

from listsync.agent.agent import ProtectedListError, SyncAgent
from listsync.agent.replica import LocalReplica, WorkspaceLink

__all__ = ["LocalReplica", "ProtectedListError", "SyncAgent", "WorkspaceLink"]
