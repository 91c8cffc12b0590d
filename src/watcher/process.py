"""Workspace change watcher orchestrator."""

import logging
import queue
import threading
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .config import WatcherConfig
from .exceptions import (
    WatcherError,
    WatchRootError,
    WatcherAlreadyRunningError,
)
from .models import ChangeEvent
from .fs_watcher import WorkspaceObserver
from .event_processor import EventProcessor

logger = logging.getLogger(__name__)

_STOPPED = object()


class ChangeWatcher:
    """
    Watches a workspace root and produces ChangeEvents.

    Coordinates the watchdog observer, the event processor and a background
    flush loop. Events are delivered in order to ``on_event``; when no
    callback is given they are buffered for ``iter_events()``.
    """

    def __init__(
        self,
        root: Path,
        config: Optional[WatcherConfig] = None,
        on_event: Optional[Callable[[ChangeEvent], None]] = None,
        on_error: Optional[Callable[[WatcherError], None]] = None,
    ):
        """
        Initialize the watcher.

        Args:
            root: Workspace root directory
            config: Watcher configuration
            on_event: Called with every ChangeEvent, from the flush thread
            on_error: Called once with the fatal error if the root is lost
        """
        self.root = Path(root).resolve()
        self.config = config or WatcherConfig()
        self.on_event = on_event
        self.on_error = on_error

        self._event_processor = EventProcessor(self.root, self.config)
        self._observer = WorkspaceObserver(
            self.root,
            self._event_processor.process,
            self.config,
        )

        # Control items always fit; events are capped in _put_event
        self._events: "queue.Queue" = queue.Queue()
        self._dropped = 0
        self._running = False
        self._failed: Optional[WatcherError] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """
        Start watching in the background.

        Returns immediately while the watcher runs in background threads.

        Raises:
            WatcherAlreadyRunningError: If already running
            WatchRootError: If the root is not a readable directory
        """
        with self._lock:
            if self._running:
                raise WatcherAlreadyRunningError("Watcher is already running")

            self._observer.start()
            self._running = True
            self._failed = None
            self._stop_event.clear()

        self._thread = threading.Thread(target=self._flush_loop, name="WatcherFlush", daemon=True)
        self._thread.start()
        logger.info(f"Watching workspace: {self.root}")

    def stop(self) -> None:
        """
        Stop the watcher gracefully.

        Pending events are flushed and delivered before returning.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False

        self._stop_event.set()
        self._observer.stop()

        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

        self._deliver(self._event_processor.flush_all())
        self._put(_STOPPED)
        logger.info(f"Stopped watching: {self.root}")

    def _flush_loop(self) -> None:
        """Worker loop that periodically flushes pending events."""
        flush_interval = self.config.flush_interval_ms / 1000.0
        logger.debug(f"Flush loop started, interval={flush_interval}s")

        while not self._stop_event.is_set():
            if not self._observer.root_readable():
                self._fail(WatchRootError(f"Workspace root became unreadable: {self.root}", str(self.root)))
                return

            try:
                self._deliver(self._event_processor.flush())
            except Exception as e:
                logger.error(f"Flush loop error: {e}")

            self._stop_event.wait(timeout=flush_interval)

    def _fail(self, error: WatcherError) -> None:
        """Stop producing events and report a fatal error to the owner."""
        logger.error(str(error))
        with self._lock:
            self._running = False
            self._failed = error

        self._stop_event.set()
        self._observer.stop()
        self._event_processor.clear()
        self._put(error)

        if self.on_error:
            self.on_error(error)

    def _deliver(self, events: List[ChangeEvent]) -> None:
        for event in events:
            logger.debug(f"Change: {event.kind.value} {event.path}")
            if self.on_event:
                self.on_event(event)
            else:
                self._put_event(event)

    def _put(self, item) -> None:
        self._events.put_nowait(item)

    def _put_event(self, event: ChangeEvent) -> None:
        if self._events.qsize() >= self.config.event_buffer_size:
            self._dropped += 1
            logger.warning(
                f"Watcher event buffer full, dropping {event.kind.value} {event.path} "
                f"({self._dropped} dropped so far)"
            )
            return
        self._events.put_nowait(event)

    def iter_events(self, timeout: Optional[float] = None) -> Iterator[ChangeEvent]:
        """
        Iterate over change events as they happen.

        This is a blocking iterator. It ends when the watcher is stopped and
        raises the fatal error if the root is lost. Only usable when no
        ``on_event`` callback was given.

        Args:
            timeout: Maximum seconds to wait for each event; None waits forever

        Yields:
            ChangeEvent objects
        """
        if self.on_event is not None:
            raise WatcherError("iter_events() is unavailable when on_event is set")

        while True:
            try:
                item = self._events.get(timeout=timeout)
            except queue.Empty:
                return

            if item is _STOPPED:
                return
            if isinstance(item, WatcherError):
                raise item
            yield item

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    @property
    def dropped_events(self) -> int:
        """Events refused because the iter_events() buffer was full."""
        return self._dropped

    @property
    def error(self) -> Optional[WatcherError]:
        """The fatal error that stopped the watcher, if any."""
        return self._failed

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
