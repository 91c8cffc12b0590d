"""
Custom exceptions for the workspace package.
"""


class WorkspaceError(Exception):
    """Base exception for workspace storage errors."""
    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class AccessDeniedError(WorkspaceError):
    """Path resolves outside the workspace root."""
    pass


class InvalidPathError(WorkspaceError):
    """Path or entry type is malformed."""
    pass


class EntryNotFoundError(WorkspaceError):
    """Entry does not exist."""
    pass


class NotAFileError(WorkspaceError):
    """Entry exists but is a directory."""
    pass
