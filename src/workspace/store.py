"""Workspace directory tree storage with root containment."""

import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import List, Union

from .exceptions import (
    WorkspaceError,
    AccessDeniedError,
    InvalidPathError,
    EntryNotFoundError,
    NotAFileError,
)
from .models import EntryType, FileContent, WorkspaceEntry

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(path: str):
    """Translate OS errors into workspace errors carrying the request path."""
    try:
        yield
    except WorkspaceError:
        raise
    except FileNotFoundError as e:
        raise EntryNotFoundError(f"No such file or directory: {path}", path) from e
    except IsADirectoryError as e:
        raise NotAFileError(f"Is a directory: {path}", path) from e
    except PermissionError as e:
        raise WorkspaceError(f"Permission denied: {path}", path) from e
    except OSError as e:
        raise WorkspaceError(f"{e.strerror or e}: {path}", path) from e


class WorkspaceStore:
    """
    CRUD operations over a workspace directory keyed by relative path.

    Every path-accepting operation checks containment before touching
    storage: the joined path is first normalized lexically, then checked
    again after symlink resolution. Paths outside the root raise
    AccessDeniedError.
    """

    def __init__(self, root: Union[str, Path], create: bool = True):
        """
        Initialize the store.

        Args:
            root: Workspace root directory
            create: Create the root if it does not exist
        """
        root = Path(root)
        if create:
            root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()

    def _contained(self, candidate: Path) -> bool:
        try:
            candidate.relative_to(self.root)
            return True
        except ValueError:
            return False

    def resolve(self, path: str) -> Path:
        """
        Map a workspace-relative path to an absolute path under the root.

        Args:
            path: Relative path (either slash style accepted)

        Returns:
            Absolute, normalized path inside the workspace

        Raises:
            InvalidPathError: If path is empty
            AccessDeniedError: If path escapes the workspace root
        """
        if path is None or not str(path).strip():
            raise InvalidPathError("File path is required", path)

        rel = str(path).replace("\\", "/")
        lexical = Path(os.path.normpath(os.path.join(str(self.root), rel)))
        if not self._contained(lexical):
            logger.warning(f"Access denied for path outside workspace: {path}")
            raise AccessDeniedError("Access denied", path)

        if not self._contained(lexical.resolve()):
            logger.warning(f"Access denied for link leaving workspace: {path}")
            raise AccessDeniedError("Access denied", path)

        return lexical

    def relative(self, abs_path: Path) -> str:
        """Express an absolute path under the root as a slash path."""
        return Path(abs_path).relative_to(self.root).as_posix()

    def _resolve_entry(self, path: str) -> Path:
        """Resolve a path that must name an entry below the root."""
        full_path = self.resolve(path)
        if full_path == self.root:
            raise AccessDeniedError("Access denied", path)
        return full_path

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_tree(self) -> List[WorkspaceEntry]:
        """
        Build a snapshot of the whole workspace tree.

        Directories precede files at every level; within a type entries
        are ordered by name (case-sensitive).

        Returns:
            Top-level entries with nested children
        """
        with _storage_errors(""):
            return self._build_tree(self.root, "")

    def _build_tree(self, directory: Path, base: str) -> List[WorkspaceEntry]:
        entries = []

        with os.scandir(directory) as it:
            for item in it:
                rel_path = f"{base}/{item.name}" if base else item.name
                try:
                    stats = item.stat()
                except FileNotFoundError:
                    # Dangling link, or removed while listing
                    continue

                if item.is_dir():
                    children = []
                    if not item.is_symlink():
                        children = self._build_tree(Path(item.path), rel_path)
                    entries.append(WorkspaceEntry(
                        name=item.name,
                        path=rel_path,
                        type=EntryType.DIRECTORY,
                        modified_at=stats.st_mtime,
                        children=children,
                    ))
                else:
                    entries.append(WorkspaceEntry(
                        name=item.name,
                        path=rel_path,
                        type=EntryType.FILE,
                        modified_at=stats.st_mtime,
                        size=stats.st_size,
                    ))

        entries.sort(key=WorkspaceEntry.sort_key)
        return entries

    def read(self, path: str) -> FileContent:
        """
        Read a file.

        Raises:
            AccessDeniedError: Path outside the workspace
            EntryNotFoundError: File does not exist
            NotAFileError: Path is a directory
        """
        full_path = self.resolve(path)

        with _storage_errors(path):
            if full_path.is_dir():
                raise NotAFileError(f"Is a directory: {path}", path)
            with open(full_path, "r", encoding="utf-8", errors="replace", newline="") as f:
                content = f.read()
            stats = full_path.stat()

        return FileContent(
            path=self.relative(full_path),
            content=content,
            size=stats.st_size,
            modified_at=stats.st_mtime,
        )

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def write(self, path: str, content: str) -> None:
        """Write a file, creating parent directories as needed."""
        full_path = self._resolve_entry(path)

        with _storage_errors(path):
            full_path.parent.mkdir(parents=True, exist_ok=True)
            with open(full_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)

        logger.debug(f"Wrote {path} ({len(content)} chars)")

    def create(self, path: str, entry_type: Union[str, EntryType], content: str = "") -> EntryType:
        """
        Create a file or directory.

        Args:
            path: Relative path of the new entry
            entry_type: "file" or "directory"
            content: Initial content for files

        Returns:
            The created entry type
        """
        try:
            entry_type = EntryType(entry_type)
        except ValueError:
            raise InvalidPathError(f"Invalid entry type: {entry_type}", path)

        full_path = self._resolve_entry(path)

        with _storage_errors(path):
            if entry_type == EntryType.DIRECTORY:
                full_path.mkdir(parents=True, exist_ok=True)
            else:
                full_path.parent.mkdir(parents=True, exist_ok=True)
                with open(full_path, "w", encoding="utf-8", newline="") as f:
                    f.write(content or "")

        logger.debug(f"Created {entry_type.value} {path}")
        return entry_type

    def delete(self, path: str) -> None:
        """Delete a file, or a directory recursively."""
        full_path = self._resolve_entry(path)

        with _storage_errors(path):
            if not full_path.exists() and not full_path.is_symlink():
                raise EntryNotFoundError(f"No such file or directory: {path}", path)
            if full_path.is_dir() and not full_path.is_symlink():
                shutil.rmtree(full_path)
            else:
                full_path.unlink()

        logger.debug(f"Deleted {path}")

    def rename(self, old_path: str, new_path: str) -> None:
        """Rename or move an entry inside the workspace."""
        full_old_path = self._resolve_entry(old_path)
        full_new_path = self._resolve_entry(new_path)

        with _storage_errors(old_path):
            if not full_old_path.exists() and not full_old_path.is_symlink():
                raise EntryNotFoundError(f"No such file or directory: {old_path}", old_path)
            os.rename(full_old_path, full_new_path)

        logger.debug(f"Renamed {old_path} -> {new_path}")
