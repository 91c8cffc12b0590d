"""Thread-safe bridge from the watcher threads to the hub's event loop."""

import asyncio
import logging
from typing import Callable, Optional

from src.watcher import ChangeEvent

from .hub import FanoutHub

logger = logging.getLogger(__name__)

_STOP = object()


class EventPump:
    """
    Hands watcher events to the hub in order.

    ``submit`` and ``report_error`` may be called from any thread; they
    schedule a put onto an asyncio queue owned by the server loop. A single
    consumer task drains the queue into ``hub.broadcast``.
    """

    def __init__(self, hub: FanoutHub, on_error: Optional[Callable[[Exception], None]] = None):
        self.hub = hub
        self.on_error = on_error
        self.error: Optional[Exception] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Bind to the running loop and start the consumer task."""
        if self.is_running:
            return self._task
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = self._loop.create_task(self.run())
        return self._task

    def _call_in_loop(self, callback, *args) -> bool:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Event pump not attached to a loop, dropping item")
            return False
        try:
            loop.call_soon_threadsafe(callback, *args)
            return True
        except RuntimeError as e:
            logger.debug(f"Event pump loop unavailable: {e}")
            return False

    def submit(self, event: ChangeEvent) -> bool:
        """Queue an event for broadcast. Safe to call from any thread."""
        queue = self._queue
        if queue is None:
            logger.debug(f"Event pump not started, dropping {event!r}")
            return False
        return self._call_in_loop(queue.put_nowait, event)

    def report_error(self, error: Exception) -> bool:
        """Report a fatal watcher error to the loop. Safe to call from any thread."""
        return self._call_in_loop(self._handle_error, error)

    def _handle_error(self, error: Exception) -> None:
        self.error = error
        logger.error(f"Change watcher failed: {error}")
        if self.on_error is not None:
            self.on_error(error)

    async def run(self) -> None:
        """Consume queued events until stopped."""
        if self._queue is None:
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()

        while True:
            event = await self._queue.get()
            if event is _STOP:
                break
            try:
                self.hub.broadcast(event)
            except Exception as e:
                logger.exception(f"Broadcast of {event!r} failed: {e}")

        logger.debug("Event pump stopped")

    async def stop(self) -> None:
        """Drain already queued events, then stop the consumer."""
        if self._queue is None:
            return
        # Queued behind events already scheduled from other threads
        asyncio.get_running_loop().call_soon(self._queue.put_nowait, _STOP)
        if self._task is not None:
            await self._task
            self._task = None
