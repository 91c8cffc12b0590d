"""Event processing: path normalization and order-preserving debouncing."""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from .config import WatcherConfig
from .models import ChangeEvent, ChangeKind, RawFSEvent, RAW_TO_KIND, to_relative

logger = logging.getLogger(__name__)


@dataclass
class PendingEvent:
    """An event waiting to be emitted after the debounce window."""
    kind: ChangeKind
    path: str
    is_directory: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_event(self) -> ChangeEvent:
        return ChangeEvent(
            kind=self.kind,
            path=self.path,
            is_directory=self.is_directory,
            timestamp=self.timestamp,
        )


class EventDebouncer:
    """
    Debounces rapid modifications while keeping arrival order.

    Pending events are kept in arrival order. The only coalescing rule is
    that a CHANGED event for a path whose latest pending event is also
    CHANGED is merged into it. Events for one path are never emitted out
    of order: once an event for a path is held back, every later event for
    that path is held back too.
    """

    def __init__(self, debounce_ms: int = 50):
        """
        Initialize the debouncer.

        Args:
            debounce_ms: Debounce window in milliseconds
        """
        self.debounce_ms = debounce_ms
        self._pending: List[PendingEvent] = []
        self._latest: Dict[str, PendingEvent] = {}
        self._lock = threading.Lock()

    def add(self, event: PendingEvent) -> None:
        """
        Add an event to the debouncer.

        Args:
            event: The pending event to add
        """
        with self._lock:
            latest = self._latest.get(event.path)
            if (
                latest is not None
                and latest.kind == ChangeKind.CHANGED
                and event.kind == ChangeKind.CHANGED
            ):
                latest.timestamp = event.timestamp
                return

            self._pending.append(event)
            self._latest[event.path] = event

    def flush(self, current_time: float) -> List[PendingEvent]:
        """
        Flush events older than the debounce window.

        Args:
            current_time: Current timestamp

        Returns:
            Events ready to emit, in arrival order
        """
        window_sec = self.debounce_ms / 1000.0
        ready = []
        held: List[PendingEvent] = []
        blocked: Set[str] = set()

        with self._lock:
            for event in self._pending:
                if event.path not in blocked and (current_time - event.timestamp) >= window_sec:
                    ready.append(event)
                    if self._latest.get(event.path) is event:
                        del self._latest[event.path]
                else:
                    blocked.add(event.path)
                    held.append(event)

            self._pending = held

        return ready

    def flush_all(self) -> List[PendingEvent]:
        """
        Flush all pending events regardless of time.

        Returns:
            List of all pending events, in arrival order
        """
        with self._lock:
            events = self._pending
            self._pending = []
            self._latest.clear()
            return events

    def pending_count(self) -> int:
        """Get number of events waiting in the window."""
        with self._lock:
            return len(self._pending)

    def clear(self) -> None:
        """Clear all pending events."""
        with self._lock:
            self._pending = []
            self._latest.clear()


class EventProcessor:
    """
    Transforms raw observer events into workspace ChangeEvents.

    Normalizes absolute paths to root-relative slash paths and routes
    everything through the debouncer.
    """

    def __init__(self, root: Path, config: Optional[WatcherConfig] = None):
        """
        Initialize the event processor.

        Args:
            root: Workspace root the events belong to
            config: Watcher configuration
        """
        self.root = root.resolve()
        self.config = config or WatcherConfig()
        self._debouncer = EventDebouncer(self.config.debounce_ms)

    def process(self, raw_event: RawFSEvent) -> None:
        """
        Process a raw filesystem event.

        Args:
            raw_event: The raw event from the filesystem observer
        """
        logger.debug(f"EventProcessor.process: {raw_event.event_type} - {raw_event.src_path}")

        kind = RAW_TO_KIND.get(raw_event.event_type)
        if kind is None:
            return

        path = to_relative(self._absolute(raw_event.src_path), self.root)
        if path is None:
            return

        self._debouncer.add(PendingEvent(
            kind=kind,
            path=path,
            is_directory=raw_event.is_directory,
            timestamp=raw_event.timestamp,
        ))

    def _absolute(self, path: Path) -> Path:
        # Deleted entries cannot be resolved; resolve the parent instead
        parent = path.parent.resolve()
        return parent / path.name

    def flush(self) -> List[ChangeEvent]:
        """
        Flush events whose debounce window has passed.

        Returns:
            Change events ready for delivery
        """
        return self._convert(self._debouncer.flush(time.time()))

    def flush_all(self) -> List[ChangeEvent]:
        """
        Force flush all pending events immediately.

        Returns:
            All pending change events
        """
        return self._convert(self._debouncer.flush_all())

    @staticmethod
    def _convert(pending: List[PendingEvent]) -> List[ChangeEvent]:
        events = []
        for item in pending:
            try:
                events.append(item.to_event())
            except ValueError as e:
                logger.warning(f"Dropping unrepresentable change for {item.path!r}: {e}")
        return events

    def pending_count(self) -> int:
        return self._debouncer.pending_count()

    def clear(self) -> None:
        """Clear all pending state."""
        self._debouncer.clear()
