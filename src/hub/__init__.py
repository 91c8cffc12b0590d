"""
Fan-out Hub

Keeps the set of live client sessions, broadcasts workspace change events
to all of them and answers the client control protocol (ping, subscribe).
"""

from .exceptions import HubError, ProtocolError, SessionClosedError
from .protocol import (
    CONNECTED,
    PING,
    PONG,
    SUBSCRIBE,
    SUBSCRIBED,
    FILE_ADDED,
    FILE_CHANGED,
    FILE_DELETED,
    encode,
    decode,
    connected_message,
    pong_message,
    subscribed_message,
    change_message,
    parse_change_message,
)
from .session import ClientSession, SessionState
from .hub import FanoutHub
from .pump import EventPump

__all__ = [
    # Exceptions
    "HubError",
    "ProtocolError",
    "SessionClosedError",
    # Protocol
    "CONNECTED",
    "PING",
    "PONG",
    "SUBSCRIBE",
    "SUBSCRIBED",
    "FILE_ADDED",
    "FILE_CHANGED",
    "FILE_DELETED",
    "encode",
    "decode",
    "connected_message",
    "pong_message",
    "subscribed_message",
    "change_message",
    "parse_change_message",
    # Sessions
    "ClientSession",
    "SessionState",
    # Main
    "FanoutHub",
    "EventPump",
]
