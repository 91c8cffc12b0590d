"""
Workspace Store

Directory tree storage for the editor: tree snapshots and file CRUD keyed
by workspace-relative paths, with a strict root containment check.
"""

from .models import EntryType, WorkspaceEntry, FileContent, iter_paths
from .exceptions import (
    WorkspaceError,
    AccessDeniedError,
    InvalidPathError,
    EntryNotFoundError,
    NotAFileError,
)
from .store import WorkspaceStore

__all__ = [
    "EntryType",
    "WorkspaceEntry",
    "FileContent",
    "iter_paths",
    "WorkspaceError",
    "AccessDeniedError",
    "InvalidPathError",
    "EntryNotFoundError",
    "NotAFileError",
    "WorkspaceStore",
]
