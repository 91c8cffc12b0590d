"""File system observation using the watchdog library."""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Set

from watchdog.observers import Observer
from watchdog.events import (
    FileSystemEventHandler,
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
)

from .config import WatcherConfig
from .exceptions import WatchRootError
from .models import RawFSEvent

logger = logging.getLogger(__name__)


class FSEventHandler(FileSystemEventHandler):
    """
    Handler that converts watchdog events to RawFSEvent.

    Keeps the set of visible files under the root so that a move onto an
    existing file (an atomic save) is reported as a modification of the
    destination rather than as a new entry.
    """

    def __init__(
        self,
        callback: Callable[[RawFSEvent], None],
        config: WatcherConfig,
        root: Path,
    ):
        super().__init__()
        self.callback = callback
        self.config = config
        self.root = root
        self._known: Set[str] = set()
        self._lock = threading.Lock()

    def _should_ignore(self, path: str) -> bool:
        """Check if the path should be ignored."""
        return self.config.should_ignore(Path(path), self.root)

    def prime(self) -> int:
        """
        Record the files that exist before observation starts.

        Returns:
            Number of known files
        """
        known = set()
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if not self._should_ignore(os.path.join(dirpath, d))]
            for name in filenames:
                path = os.path.join(dirpath, name)
                if not self._should_ignore(path):
                    known.add(path)
        with self._lock:
            self._known = known
        return len(known)

    def is_known(self, path: str) -> bool:
        with self._lock:
            return path in self._known

    def _forget(self, path: str) -> None:
        prefix = path.rstrip(os.sep) + os.sep
        with self._lock:
            self._known.discard(path)
            self._known = {p for p in self._known if not p.startswith(prefix)}

    def _emit(self, event_type: str, src_path: str, is_directory: bool = False):
        """Emit a RawFSEvent to the callback."""
        if self._should_ignore(src_path):
            return
        if is_directory and not self.config.report_directories:
            return

        raw_event = RawFSEvent(
            event_type=event_type,
            src_path=Path(src_path),
            is_directory=is_directory,
            timestamp=time.time(),
        )
        self.callback(raw_event)

    def on_created(self, event):
        is_dir = isinstance(event, DirCreatedEvent)
        path = os.fsdecode(event.src_path)
        if not is_dir and not self._should_ignore(path):
            with self._lock:
                self._known.add(path)
        self._emit("created", path, is_directory=is_dir)

    def on_deleted(self, event):
        is_dir = isinstance(event, DirDeletedEvent)
        path = os.fsdecode(event.src_path)
        self._forget(path)
        self._emit("deleted", path, is_directory=is_dir)

    def on_modified(self, event):
        # Directory mtime changes follow every child change
        if isinstance(event, DirModifiedEvent):
            return
        self._emit("modified", os.fsdecode(event.src_path))

    def on_moved(self, event):
        is_dir = isinstance(event, DirMovedEvent)
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(event.dest_path)

        if is_dir:
            src_prefix = src.rstrip(os.sep) + os.sep
            dest_prefix = dest.rstrip(os.sep) + os.sep
            with self._lock:
                self._known = {
                    dest_prefix + p[len(src_prefix):] if p.startswith(src_prefix) else p
                    for p in self._known
                }
            self._emit("deleted", src, is_directory=True)
            self._emit("created", dest, is_directory=True)
            return

        with self._lock:
            self._known.discard(src)
            replaced = dest in self._known
            if not self._should_ignore(dest):
                self._known.add(dest)

        self._emit("deleted", src)
        self._emit("modified" if replaced else "created", dest)


class WorkspaceObserver:
    """
    Owns the watchdog observer for a single workspace root.

    Only mutations after start() are reported; existing entries never
    produce events.
    """

    def __init__(
        self,
        root: Path,
        event_callback: Callable[[RawFSEvent], None],
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize the observer.

        Args:
            root: Directory to watch
            event_callback: Callback function for raw filesystem events
            config: Watcher configuration
        """
        self.root = root.resolve()
        self.event_callback = event_callback
        self.config = config or WatcherConfig()
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    def start(self) -> bool:
        """
        Start observing the root.

        Returns:
            True if observation started, False if already observing

        Raises:
            WatchRootError: If the root is not a readable directory
        """
        with self._lock:
            if self._observer is not None:
                return False

            if not self.root.is_dir() or not os.access(self.root, os.R_OK | os.X_OK):
                raise WatchRootError(f"Workspace root is not a readable directory: {self.root}", str(self.root))

            observer = Observer()
            handler = FSEventHandler(self.event_callback, self.config, self.root)
            known = handler.prime()
            try:
                observer.schedule(handler, str(self.root), recursive=self.config.recursive)
                observer.start()
            except OSError as e:
                raise WatchRootError(f"Cannot watch {self.root}: {e}", str(self.root)) from e

            self._observer = observer
            logger.debug(f"Observing {self.root} ({known} files)")
            return True

    def stop(self) -> bool:
        """
        Stop observing.

        Returns:
            True if observation stopped, False if not observing
        """
        with self._lock:
            if self._observer is None:
                return False

            observer = self._observer
            self._observer = None

        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout=5.0)
        return True

    def is_alive(self) -> bool:
        """Check whether the observer thread is running."""
        with self._lock:
            return self._observer is not None and self._observer.is_alive()

    def root_readable(self) -> bool:
        """Check whether the root is still a readable directory."""
        return self.root.is_dir() and os.access(self.root, os.R_OK | os.X_OK)

    @property
    def is_watching(self) -> bool:
        with self._lock:
            return self._observer is not None
