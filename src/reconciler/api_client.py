"""Async HTTP client for the workspace file API."""

import logging
from typing import List, Optional, Union

import httpx

from src.workspace import (
    AccessDeniedError,
    EntryNotFoundError,
    EntryType,
    FileContent,
    InvalidPathError,
    WorkspaceEntry,
)

from .exceptions import WorkspaceAPIError

logger = logging.getLogger(__name__)


class WorkspaceAPIClient:
    """
    CRUD interface of the workspace over HTTP.

    Error responses are mapped back onto the workspace exception types so
    callers handle local and remote stores alike.
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Server base URL, e.g. http://localhost:3000
            transport: Optional httpx transport (httpx.ASGITransport in tests)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, path: Optional[str] = None, **kwargs) -> dict:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise WorkspaceAPIError(f"Request to {url} failed: {e}", path=path) from e

        if resp.status_code == 200:
            return resp.json()

        try:
            error = resp.json().get("error", resp.text)
        except Exception:
            error = resp.text

        if resp.status_code == 400:
            raise InvalidPathError(error, path)
        if resp.status_code == 403:
            raise AccessDeniedError(error, path)
        if resp.status_code == 404:
            raise EntryNotFoundError(error, path)
        raise WorkspaceAPIError(error, status_code=resp.status_code, path=path)

    async def list_tree(self) -> List[WorkspaceEntry]:
        data = await self._request("GET", "/api/files/tree")
        return [WorkspaceEntry.from_dict(item) for item in data.get("tree", [])]

    async def read_file(self, path: str) -> FileContent:
        data = await self._request("GET", "/api/files/read", path, params={"path": path})
        return FileContent.from_dict(data)

    async def write_file(self, path: str, content: str) -> None:
        await self._request("POST", "/api/files/write", path, json={"path": path, "content": content})

    async def create(self, path: str, entry_type: Union[str, EntryType] = EntryType.FILE,
                     content: str = "") -> None:
        if isinstance(entry_type, EntryType):
            entry_type = entry_type.value
        await self._request(
            "POST",
            "/api/files/create",
            path,
            json={"path": path, "type": entry_type, "content": content},
        )

    async def delete(self, path: str) -> None:
        await self._request("DELETE", "/api/files/delete", path, params={"path": path})

    async def rename(self, old_path: str, new_path: str) -> None:
        await self._request(
            "POST",
            "/api/files/rename",
            old_path,
            json={"oldPath": old_path, "newPath": new_path},
        )
