"""Domain errors shared by the sync server and the sync agent."""


class WorkspaceNotFoundError(LookupError):
    """Raised when a workspace id or code does not resolve."""
