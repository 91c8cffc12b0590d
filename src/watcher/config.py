"""Configuration for the workspace change watcher."""

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class WatcherConfig:
    """
    Configuration options for the change watcher.

    Attributes:
        debounce_ms: Quiet period before a pending event is emitted; repeated
            modifications of one path inside the window collapse into one
        flush_interval_ms: Interval of the background flush loop
        ignore_hidden: Ignore entries with any path component starting with "."
        ignore_patterns: Extra glob patterns for names to ignore, none by default
        recursive: Whether to watch subdirectories
        report_directories: Emit added/deleted events for directories too
        event_buffer_size: Maximum undelivered events kept for iter_events()
    """
    debounce_ms: int = 50
    flush_interval_ms: int = 100
    ignore_hidden: bool = True
    ignore_patterns: List[str] = field(default_factory=list)
    recursive: bool = True
    report_directories: bool = True
    event_buffer_size: int = 10000

    def should_ignore(self, path: Path, root: Path) -> bool:
        """
        Check if a path should be ignored.

        Only the part of the path below root is inspected, so a workspace
        living under a hidden directory is still watched.

        Args:
            path: Absolute path to check
            root: Workspace root the path belongs to

        Returns:
            True if the path should be ignored
        """
        try:
            parts = path.relative_to(root).parts
        except ValueError:
            return True

        for part in parts:
            if self.ignore_hidden and part.startswith("."):
                return True
            for pattern in self.ignore_patterns:
                if fnmatch.fnmatch(part, pattern):
                    return True

        return False
