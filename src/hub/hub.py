"""Fan-out hub: broadcasts change events to every live session."""

import logging
from typing import Dict, List, Union

from src.watcher import ChangeEvent

from .exceptions import ProtocolError
from .protocol import (
    PING,
    SUBSCRIBE,
    change_message,
    connected_message,
    decode,
    encode,
    pong_message,
    subscribed_message,
)
from .session import ClientSession

logger = logging.getLogger(__name__)


class FanoutHub:
    """
    Set of live sessions plus the server side of the control protocol.

    All methods run on the server event loop; events from other threads
    must come in through an EventPump.
    """

    def __init__(self, max_queue: int = 1000):
        self.max_queue = max_queue
        # Insertion-ordered set
        self._sessions: Dict[ClientSession, None] = {}

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def sessions(self) -> List[ClientSession]:
        return list(self._sessions)

    def create_session(self, transport) -> ClientSession:
        """Build a session for a transport using the hub's queue limit."""
        return ClientSession(transport, max_queue=self.max_queue)

    def register(self, session: ClientSession) -> None:
        """
        Add a session, open it and greet it with a connected message.

        Raises:
            SessionClosedError: If the session was already opened or closed
        """
        session.open(on_closed=self._on_session_closed)
        self._sessions[session] = None
        session.send_control(encode(connected_message()))
        logger.info(f"Client connected: {session.id} ({self.session_count} active)")

    def unregister(self, session: ClientSession, reason: str = "disconnected",
                   close_transport: bool = False) -> bool:
        """
        Remove and close a session. Idempotent.

        Returns:
            True if the session was registered
        """
        removed = self._sessions.pop(session, False) is None
        session.close(reason, close_transport=close_transport)
        if removed:
            logger.info(f"Client disconnected: {session.id} ({reason}, {self.session_count} active)")
        return removed

    def _on_session_closed(self, session: ClientSession) -> None:
        if self._sessions.pop(session, False) is None:
            logger.info(
                f"Client disconnected: {session.id} "
                f"({session.close_reason}, {self.session_count} active)"
            )

    def broadcast(self, event: Union[ChangeEvent, dict]) -> int:
        """
        Send an event to every open session.

        The message is serialized once. Sessions that cannot accept it are
        unregistered; the others are unaffected. Never raises.

        Returns:
            Number of sessions the message was queued for
        """
        try:
            message = event if isinstance(event, dict) else change_message(event)
            text = encode(message)
        except Exception as e:
            logger.error(f"Cannot serialize broadcast {event!r}: {e}")
            return 0

        delivered = 0
        for session in list(self._sessions):
            if session.offer(text):
                delivered += 1
            else:
                self.unregister(session, "delivery failed", close_transport=True)

        logger.debug(f"Broadcast {message.get('type')} {message.get('path', '')} to {delivered} session(s)")
        return delivered

    def handle_inbound(self, session: ClientSession, text: Union[str, bytes]) -> None:
        """Answer one inbound client frame. Malformed frames are logged and dropped."""
        try:
            message = decode(text)
        except ProtocolError as e:
            logger.warning(f"Ignoring malformed message from {session.id}: {e}")
            return

        msg_type = message["type"]
        if msg_type == PING:
            session.send_control(encode(pong_message()))
        elif msg_type == SUBSCRIBE:
            session.send_control(encode(subscribed_message(message.get("channel"))))
        else:
            logger.info(f"Unknown message type from {session.id}: {msg_type}")

    def close_all(self, reason: str = "server shutdown") -> None:
        for session in list(self._sessions):
            self.unregister(session, reason, close_transport=True)
