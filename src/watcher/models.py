"""Data models for the workspace change watcher."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
import time


class ChangeKind(Enum):
    """Kinds of workspace change events."""
    ADDED = "added"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """
    A normalized workspace change.

    Attributes:
        kind: What happened to the entry (added, changed, deleted)
        path: Path relative to the workspace root, forward-slash separated
        is_directory: Whether the entry is a directory
        timestamp: Unix timestamp of the underlying notification
    """
    kind: ChangeKind
    path: str
    is_directory: bool = False
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.path:
            raise ValueError("path must not be empty")
        if self.path.startswith("/"):
            raise ValueError(f"path must be relative to the workspace root: {self.path}")

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "path": self.path,
            "is_directory": self.is_directory,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeEvent":
        """Create from dictionary."""
        return cls(
            kind=ChangeKind(data["kind"]),
            path=data["path"],
            is_directory=data.get("is_directory", False),
            timestamp=data.get("timestamp", time.time()),
        )


@dataclass
class RawFSEvent:
    """
    Raw event from the filesystem observer before processing.

    Attributes:
        event_type: Raw event type string (created, deleted, modified)
        src_path: Absolute path of the affected entry
        is_directory: Whether this is a directory event
        timestamp: Unix timestamp when the event occurred
    """
    event_type: str
    src_path: Path
    is_directory: bool = False
    timestamp: float = field(default_factory=time.time)


RAW_TO_KIND = {
    "created": ChangeKind.ADDED,
    "modified": ChangeKind.CHANGED,
    "deleted": ChangeKind.DELETED,
}


def to_relative(path: Path, root: Path) -> Optional[str]:
    """
    Express an absolute path relative to root with forward slashes.

    Returns:
        The relative path, or None if path is the root or outside it
    """
    try:
        rel = path.relative_to(root)
    except ValueError:
        return None
    if not rel.parts:
        return None
    return rel.as_posix()
