"""Applies hub messages and user operations to the client workspace model."""

import logging
from typing import Optional, Tuple, Union

from src.hub import ProtocolError, decode, parse_change_message
from src.watcher import ChangeKind
from src.workspace import EntryType, WorkspaceError

from .api_client import WorkspaceAPIClient
from .state import ReconcilerState, is_under, remap_path

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Keeps a ReconcilerState consistent with the server.

    Hub messages go through ``apply``; editor actions go through the
    operation methods. Operations that write to the server update the
    local model only after the server call succeeded.
    """

    def __init__(self, api: WorkspaceAPIClient, state: Optional[ReconcilerState] = None):
        self.api = api
        self.state = state or ReconcilerState()
        # (path, previously active) when the last operation newly opened a file
        self._last_opened: Optional[Tuple[str, Optional[str]]] = None

    def _begin(self) -> Optional[Tuple[str, Optional[str]]]:
        last, self._last_opened = self._last_opened, None
        return last

    # ------------------------------------------------------------------
    # Hub messages
    # ------------------------------------------------------------------

    async def apply(self, message: Union[dict, str, bytes]) -> None:
        """
        Apply one hub message.

        ``file:changed`` and ``file:added`` re-fetch the path if its content
        is held; ``file:added`` and ``file:deleted`` reload the tree.
        Anything else is ignored. Fetch failures are logged, never raised.
        """
        self._begin()

        if not isinstance(message, dict):
            try:
                message = decode(message)
            except ProtocolError as e:
                logger.warning(f"Ignoring malformed hub message: {e}")
                return

        event = parse_change_message(message)
        if event is None:
            logger.debug(f"Ignoring hub message {message.get('type')}")
            return

        # A file replaced by a rename arrives as added, so both kinds refresh
        if event.kind != ChangeKind.DELETED and event.path in self.state.file_contents:
            try:
                await self._refresh_content(event.path)
            except WorkspaceError as e:
                logger.error(f"Failed to refresh {event.path} after {message.get('type')}: {e}")

        if event.kind != ChangeKind.CHANGED:
            try:
                await self.load_file_tree()
            except WorkspaceError as e:
                logger.error(f"Failed to reload tree after {message.get('type')} for {event.path}: {e}")

    async def _refresh_content(self, path: str) -> None:
        fetched = await self.api.read_file(path)
        state = self.state
        if path not in state.file_contents:
            return

        if self.is_dirty(path):
            if fetched.content == state.base_contents.get(path):
                # Server unchanged since the last load or save
                return
            state.base_contents[path] = fetched.content
            if fetched.content == state.file_contents[path]:
                state.conflicts.discard(path)
            else:
                state.conflicts.add(path)
                logger.warning(f"{path} changed on the server while it has unsaved edits")
            return

        state.file_contents[path] = fetched.content
        state.base_contents[path] = fetched.content
        state.conflicts.discard(path)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_file_tree(self) -> None:
        self._begin()
        self.state.loading = True
        try:
            self.state.file_tree = await self.api.list_tree()
        finally:
            self.state.loading = False

    async def load_file(self, path: str) -> str:
        """Fetch a file from the server, replacing any cached buffer."""
        self._begin()
        fetched = await self.api.read_file(path)
        self.state.file_contents[path] = fetched.content
        self.state.base_contents[path] = fetched.content
        self.state.conflicts.discard(path)
        return fetched.content

    async def reload_file(self, path: str) -> str:
        """Discard local edits and take the server copy."""
        return await self.load_file(path)

    async def resync(self) -> None:
        """
        Refresh the tree and every held buffer.

        Used after a reconnect, when change events may have been missed.
        """
        self._begin()
        await self.load_file_tree()
        for path in list(self.state.file_contents):
            try:
                await self._refresh_content(path)
            except WorkspaceError as e:
                logger.warning(f"Resync could not refresh {path}: {e}")

    # ------------------------------------------------------------------
    # Editor operations
    # ------------------------------------------------------------------

    async def open_file(self, path: str) -> None:
        """Open a file (fetching it if not cached) and make it active."""
        self._begin()
        state = self.state
        if path not in state.file_contents:
            await self.load_file(path)

        if path not in state.open_files:
            self._last_opened = (path, state.active_file)
            state.open_files.append(path)
        state.active_file = path

    def close_file(self, path: str) -> None:
        """
        Close a file. Cached content is kept.

        If the closed file was active, the previous open file becomes
        active, else the next, else none. Closing a file the preceding
        operation newly opened restores the file active before it.
        """
        last_opened = self._begin()
        state = self.state
        if path not in state.open_files:
            return

        index = state.open_files.index(path)
        state.open_files.remove(path)
        if state.active_file != path:
            return

        if last_opened and last_opened[0] == path and (
            last_opened[1] is None or last_opened[1] in state.open_files
        ):
            state.active_file = last_opened[1]
        elif index > 0:
            state.active_file = state.open_files[index - 1]
        elif state.open_files:
            state.active_file = state.open_files[0]
        else:
            state.active_file = None

    def set_active_file(self, path: Optional[str]) -> None:
        self._begin()
        if path is not None and path not in self.state.open_files:
            raise ValueError(f"File is not open: {path}")
        self.state.active_file = path

    def update_file_content(self, path: str, content: str) -> None:
        """Record a local, unsaved edit."""
        self._begin()
        self.state.file_contents[path] = content

    def is_dirty(self, path: str) -> bool:
        """True if the buffer holds edits the server does not have."""
        state = self.state
        if path not in state.file_contents:
            return False
        return state.file_contents[path] != state.base_contents.get(path)

    async def save_file(self, path: str, content: str) -> None:
        """Write through to the server, then echo locally."""
        self._begin()
        await self.api.write_file(path, content)
        self.state.file_contents[path] = content
        self.state.base_contents[path] = content
        self.state.conflicts.discard(path)

    async def create_file(self, path: str, entry_type: Union[str, EntryType] = EntryType.FILE,
                          content: str = "") -> None:
        self._begin()
        await self.api.create(path, entry_type, content)
        await self.load_file_tree()

    async def delete_file(self, path: str) -> None:
        """Delete on the server and forget the path and everything under it."""
        self._begin()
        await self.api.delete(path)

        state = self.state
        old_open = list(state.open_files)
        state.open_files = [p for p in old_open if not is_under(p, path)]
        for key in [p for p in state.file_contents if is_under(p, path)]:
            del state.file_contents[key]
        for key in [p for p in state.base_contents if is_under(p, path)]:
            del state.base_contents[key]
        state.conflicts = {p for p in state.conflicts if not is_under(p, path)}

        active = state.active_file
        if active is not None and is_under(active, path):
            state.active_file = self._neighbour(old_open, old_open.index(active), path)

        await self.load_file_tree()

    @staticmethod
    def _neighbour(old_open, index: int, removed: str) -> Optional[str]:
        for candidate in reversed(old_open[:index]):
            if not is_under(candidate, removed):
                return candidate
        for candidate in old_open[index + 1:]:
            if not is_under(candidate, removed):
                return candidate
        return None

    async def rename_file(self, old_path: str, new_path: str) -> None:
        """Rename on the server and remap the path and its descendants."""
        self._begin()
        await self.api.rename(old_path, new_path)

        state = self.state
        def remap(p):
            return remap_path(p, old_path, new_path)

        state.file_contents = {remap(p): c for p, c in state.file_contents.items()}
        state.base_contents = {remap(p): c for p, c in state.base_contents.items()}
        state.conflicts = {remap(p) for p in state.conflicts}
        state.open_files = list(dict.fromkeys(remap(p) for p in state.open_files))
        if state.active_file is not None:
            state.active_file = remap(state.active_file)

        await self.load_file_tree()
