"""Per-connection session with prioritized outbound queues."""

import asyncio
import logging
import uuid
from collections import deque
from enum import Enum
from typing import Callable, Optional

from .exceptions import SessionClosedError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle. CLOSED is terminal."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ClientSession:
    """
    One live client connection.

    Outbound frames go through two queues drained by a single writer task:
    control replies (pong, subscribed, connected) are always written before
    queued broadcasts. A slow transport only backs up its own queues.

    The transport is anything with ``async send_text(str)`` and
    ``async close(code)``, e.g. a Starlette WebSocket.
    """

    def __init__(self, transport, max_queue: int = 1000, session_id: Optional[str] = None):
        self.transport = transport
        self.max_queue = max_queue
        self.id = session_id or uuid.uuid4().hex[:8]
        self.state = SessionState.CONNECTING
        self.close_reason: Optional[str] = None

        self._control: deque = deque()
        self._outbound: deque = deque()
        self._wakeup = asyncio.Event()
        self._writer: Optional[asyncio.Task] = None
        self._on_closed: Optional[Callable[["ClientSession"], None]] = None

    def __repr__(self) -> str:
        return f"ClientSession(id={self.id!r}, state={self.state.value})"

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def pending_count(self) -> int:
        return len(self._control) + len(self._outbound)

    def open(self, on_closed: Optional[Callable[["ClientSession"], None]] = None) -> None:
        """
        Transition to OPEN and start the writer task.

        Must be called from the event loop that owns the transport.

        Raises:
            SessionClosedError: If the session is not CONNECTING
        """
        if self.state is not SessionState.CONNECTING:
            raise SessionClosedError(f"Session {self.id} cannot be opened from {self.state.value}")

        self._on_closed = on_closed
        self.state = SessionState.OPEN
        self._writer = asyncio.get_running_loop().create_task(self._write_loop())

    def offer(self, text: str) -> bool:
        """
        Queue a broadcast frame without blocking.

        Returns:
            False if the session is closed or its queue is full
        """
        if not self.is_open:
            return False
        if len(self._outbound) >= self.max_queue:
            logger.warning(f"Session {self.id} outbound queue full ({self.max_queue})")
            return False
        self._outbound.append(text)
        self._wakeup.set()
        return True

    def send_control(self, text: str) -> bool:
        """Queue a control frame ahead of all pending broadcasts."""
        if not self.is_open:
            return False
        self._control.append(text)
        self._wakeup.set()
        return True

    async def _write_loop(self) -> None:
        while self.state is SessionState.OPEN:
            if not self._control and not self._outbound:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            if self._control:
                text = self._control.popleft()
            else:
                text = self._outbound.popleft()

            try:
                await self.transport.send_text(text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.info(f"Send to session {self.id} failed: {e}")
                self.close(f"send failed: {e}", close_transport=False)
                return

    def close(self, reason: str = "closed", close_transport: bool = False) -> bool:
        """
        Move to CLOSED. Idempotent.

        Args:
            reason: Recorded close reason
            close_transport: Also close the underlying transport

        Returns:
            True if this call closed the session
        """
        if self.state is SessionState.CLOSED:
            return False

        self.state = SessionState.CLOSED
        self.close_reason = reason
        self._control.clear()
        self._outbound.clear()
        self._wakeup.set()

        writer = self._writer
        if writer is not None and not writer.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if writer is not current:
                writer.cancel()

        if close_transport:
            try:
                asyncio.get_running_loop().create_task(self._close_transport())
            except RuntimeError:
                logger.debug(f"No running loop to close transport of session {self.id}")

        logger.debug(f"Session {self.id} closed: {reason}")

        if self._on_closed is not None:
            callback, self._on_closed = self._on_closed, None
            callback(self)
        return True

    async def _close_transport(self) -> None:
        try:
            await self.transport.close(code=1011)
        except Exception as e:
            logger.debug(f"Closing transport of session {self.id} failed: {e}")

    async def wait_closed(self) -> None:
        """Wait for the writer task to finish."""
        if self._writer is not None and not self._writer.done():
            await asyncio.wait([self._writer])
