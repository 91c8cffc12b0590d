"""
IDE Server

FastAPI application exposing the workspace file API, the AI gateway and
the real-time sync WebSocket backed by the change watcher and fan-out hub.
"""

from .config import ServerConfig
from .api_server import create_app, IDEServerService

__all__ = [
    "ServerConfig",
    "create_app",
    "IDEServerService",
]
