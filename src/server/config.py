"""
Configuration for the IDE server.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from src.assistant import AssistantConfig
from src.watcher import WatcherConfig


@dataclass
class ServerConfig:
    """Main configuration for the HTTP / WebSocket server."""
    # Workspace served to the editor
    workspace_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("WORKSPACE_DIR", "workspace"))
    )

    host: str = field(default_factory=lambda: os.environ.get("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.environ.get("PORT", "3000")))

    # Run the change watcher and broadcast its events
    watch: bool = True
    watcher: WatcherConfig = field(default_factory=WatcherConfig)

    assistant: AssistantConfig = field(default_factory=AssistantConfig)

    # Per-session outbound queue limit before the session is dropped
    max_session_queue: int = 1000

    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    def __post_init__(self):
        if isinstance(self.workspace_dir, str):
            self.workspace_dir = Path(self.workspace_dir)
        if isinstance(self.port, str):
            self.port = int(self.port)
        if isinstance(self.watcher, dict):
            self.watcher = WatcherConfig(**self.watcher)
        if isinstance(self.assistant, dict):
            self.assistant = AssistantConfig(**self.assistant)
