"""Data models for workspace entries."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class EntryType(Enum):
    """Types of workspace entries."""
    FILE = "file"
    DIRECTORY = "directory"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


@dataclass
class WorkspaceEntry:
    """
    A node of the workspace tree snapshot.

    Attributes:
        name: Entry name
        path: Path relative to the workspace root, forward-slash separated
        type: FILE or DIRECTORY
        modified_at: Unix timestamp of last modification
        size: Size in bytes (files only)
        children: Sorted child entries (directories only)
    """
    name: str
    path: str
    type: EntryType
    modified_at: float
    size: Optional[int] = None
    children: Optional[List["WorkspaceEntry"]] = None

    @property
    def is_directory(self) -> bool:
        return self.type == EntryType.DIRECTORY

    def sort_key(self):
        """Directories first, then case-sensitive name order."""
        return (0 if self.is_directory else 1, self.name)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = {
            "name": self.name,
            "path": self.path,
            "type": self.type.value,
            "modified": _iso(self.modified_at),
        }
        if self.is_directory:
            data["children"] = [child.to_dict() for child in self.children or []]
        else:
            data["size"] = self.size
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WorkspaceEntry":
        """Create from dictionary."""
        entry_type = EntryType(data["type"])
        children = None
        if entry_type == EntryType.DIRECTORY:
            children = [cls.from_dict(c) for c in data.get("children", [])]
        return cls(
            name=data["name"],
            path=data["path"],
            type=entry_type,
            modified_at=_parse_iso(data.get("modified")) or 0.0,
            size=data.get("size"),
            children=children,
        )


@dataclass
class FileContent:
    """Content of a workspace file as returned by a read."""
    path: str
    content: str
    size: int
    modified_at: float = field(default=0.0)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "path": self.path,
            "size": self.size,
            "modified": _iso(self.modified_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileContent":
        return cls(
            path=data["path"],
            content=data["content"],
            size=data.get("size", len(data["content"].encode("utf-8"))),
            modified_at=_parse_iso(data.get("modified")) or 0.0,
        )


def iter_paths(entries: List[WorkspaceEntry]):
    """Yield every path in a tree, depth first."""
    for entry in entries:
        yield entry.path
        if entry.children:
            yield from iter_paths(entry.children)
