"""Custom exceptions for the hub package."""


class HubError(Exception):
    """Base exception for hub errors."""
    pass


class ProtocolError(HubError):
    """Inbound message is not a well-formed protocol message."""
    pass


class SessionClosedError(HubError):
    """Session is closed or was already opened; sessions are never reused."""
    pass
