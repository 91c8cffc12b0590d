"""
Wire protocol between the hub and browser sessions.

Messages are JSON objects with a ``type`` field, sent as text frames.

Server -> client:
    {"type": "connected", "message": ..., "timestamp": ms}
    {"type": "file:added" | "file:changed" | "file:deleted", "path": ...}
    {"type": "pong", "timestamp": ms}
    {"type": "subscribed", "channel": ...}

Client -> server:
    {"type": "ping"}
    {"type": "subscribe", "channel": ...}
"""

import json
import time
from typing import Optional, Union

from src.watcher import ChangeEvent, ChangeKind

from .exceptions import ProtocolError

CONNECTED = "connected"
PING = "ping"
PONG = "pong"
SUBSCRIBE = "subscribe"
SUBSCRIBED = "subscribed"

FILE_ADDED = "file:added"
FILE_CHANGED = "file:changed"
FILE_DELETED = "file:deleted"

KIND_TO_TYPE = {
    ChangeKind.ADDED: FILE_ADDED,
    ChangeKind.CHANGED: FILE_CHANGED,
    ChangeKind.DELETED: FILE_DELETED,
}
TYPE_TO_KIND = {v: k for k, v in KIND_TO_TYPE.items()}

CONNECTED_TEXT = "WebSocket connection established"


def now_ms() -> int:
    """Server timestamp in epoch milliseconds."""
    return int(time.time() * 1000)


def encode(message: dict) -> str:
    return json.dumps(message)


def decode(text: Union[str, bytes]) -> dict:
    """
    Parse an inbound frame.

    Raises:
        ProtocolError: If the frame is not a JSON object with a string type
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not UTF-8: {e}") from e

    try:
        message = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Frame is not JSON: {e}") from e

    if not isinstance(message, dict):
        raise ProtocolError("Frame is not a JSON object")
    if not isinstance(message.get("type"), str):
        raise ProtocolError("Frame has no type")
    return message


def connected_message() -> dict:
    return {"type": CONNECTED, "message": CONNECTED_TEXT, "timestamp": now_ms()}


def pong_message() -> dict:
    return {"type": PONG, "timestamp": now_ms()}


def subscribed_message(channel) -> dict:
    return {"type": SUBSCRIBED, "channel": channel}


def change_message(event: ChangeEvent) -> dict:
    return {"type": KIND_TO_TYPE[event.kind], "path": event.path}


def parse_change_message(message: dict) -> Optional[ChangeEvent]:
    """
    Turn a broadcast message back into a ChangeEvent.

    Returns:
        The event, or None if the message is not a change notification
    """
    kind = TYPE_TO_KIND.get(message.get("type"))
    path = message.get("path")
    if kind is None or not isinstance(path, str) or not path:
        return None
    return ChangeEvent(kind=kind, path=path)
