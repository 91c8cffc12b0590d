"""Custom exceptions for the reconciler package."""

from typing import Optional

from src.workspace import WorkspaceError


class WorkspaceAPIError(WorkspaceError):
    """Workspace HTTP API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message, path)
        self.status_code = status_code


class SyncClientError(Exception):
    """Sync connection cannot be used."""
    pass
