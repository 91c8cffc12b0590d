"""Client-side workspace model."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from src.workspace import WorkspaceEntry, iter_paths


def is_under(path: str, prefix: str) -> bool:
    """True if path equals prefix or lies inside it."""
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def remap_path(path: str, old: str, new: str) -> str:
    """Rewrite path (or a descendant) from old to new."""
    if path == old:
        return new
    if is_under(path, old):
        return new.rstrip("/") + path[len(old.rstrip("/")):]
    return path


@dataclass
class ReconcilerState:
    """
    What a client knows about the workspace.

    Attributes:
        file_tree: Last tree snapshot from the server
        open_files: Open paths in tab order, no duplicates
        active_file: Member of open_files, or None
        file_contents: Buffers for loaded paths (may hold unsaved edits)
        base_contents: Last content known to match the server per path
        conflicts: Paths changed on the server while a local edit exists
        loading: A tree load is in flight
    """
    file_tree: List[WorkspaceEntry] = field(default_factory=list)
    open_files: List[str] = field(default_factory=list)
    active_file: Optional[str] = None
    file_contents: Dict[str, str] = field(default_factory=dict)
    base_contents: Dict[str, str] = field(default_factory=dict)
    conflicts: Set[str] = field(default_factory=set)
    loading: bool = False

    def tree_paths(self) -> List[str]:
        return list(iter_paths(self.file_tree))

    def check_invariants(self) -> None:
        """Raise AssertionError if the model is inconsistent."""
        assert len(self.open_files) == len(set(self.open_files)), "duplicate open file"
        assert self.active_file is None or self.active_file in self.open_files, \
            "active file is not open"
        assert self.conflicts <= set(self.file_contents), "conflict on unloaded path"
