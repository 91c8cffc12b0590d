"""
Workspace Change Watcher

Watches a workspace directory and produces normalized change events for
the fan-out hub.

Features:
- File and directory events: ADDED, CHANGED, DELETED
- Hidden entries and editor artifacts ignored
- No events for entries that existed before watching started
- Order-preserving debounce of repeated modifications
- Fatal error reporting when the root is lost
"""

from .models import (
    ChangeKind,
    ChangeEvent,
    RawFSEvent,
)

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    WatchRootError,
    WatcherAlreadyRunningError,
)

from .fs_watcher import WorkspaceObserver, FSEventHandler
from .event_processor import EventProcessor, EventDebouncer
from .process import ChangeWatcher


__all__ = [
    # Models
    "ChangeKind",
    "ChangeEvent",
    "RawFSEvent",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "WatchRootError",
    "WatcherAlreadyRunningError",
    # Components
    "WorkspaceObserver",
    "FSEventHandler",
    "EventProcessor",
    "EventDebouncer",
    # Main
    "ChangeWatcher",
]

__version__ = "0.1.0"
