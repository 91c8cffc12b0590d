"""Custom exceptions for the watcher package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class WatchRootError(WatcherError):
    """The watched root is missing or unreadable."""
    def __init__(self, message: str, root: str = None):
        super().__init__(message)
        self.root = root


class WatcherAlreadyRunningError(WatcherError):
    """Watcher is already running."""
    pass
