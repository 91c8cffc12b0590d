"""
Client Reconciler

Client-side model of the workspace (tree, open files, active file, buffer
cache) kept consistent with the server by applying hub messages, plus the
HTTP and WebSocket clients that connect it to a running server.
"""

from .exceptions import WorkspaceAPIError, SyncClientError
from .api_client import WorkspaceAPIClient
from .state import ReconcilerState, is_under, remap_path
from .reconciler import Reconciler
from .sync_client import SyncClient

__all__ = [
    "WorkspaceAPIError",
    "SyncClientError",
    "WorkspaceAPIClient",
    "ReconcilerState",
    "is_under",
    "remap_path",
    "Reconciler",
    "SyncClient",
]
