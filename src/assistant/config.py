"""
Configuration for the assistant package.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_MODEL = "gemini-3-flash"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() == "true"


@dataclass
class GenerationSettings:
    """Sampling settings sent with every request."""
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 8192


@dataclass
class AssistantConfig:
    """Configuration for the Gemini gateway."""
    # API configuration (can be overridden by env vars)
    api_key: Optional[str] = None
    api_key_env: str = "GEMINI_API_KEY"
    model: Optional[str] = None

    # Feature flags, read from ENABLE_DEEP_THINKING / ENABLE_TDD when unset
    enable_deep_thinking: Optional[bool] = None
    enable_tdd: Optional[bool] = None

    generation: GenerationSettings = field(default_factory=GenerationSettings)
    # Lower temperature for file-editing plans
    agent_temperature: float = 0.4

    safety_categories: List[str] = field(
        default_factory=lambda: [
            "HARM_CATEGORY_HARASSMENT",
            "HARM_CATEGORY_HATE_SPEECH",
            "HARM_CATEGORY_SEXUALLY_EXPLICIT",
            "HARM_CATEGORY_DANGEROUS_CONTENT",
        ]
    )
    safety_threshold: str = "BLOCK_NONE"

    def __post_init__(self):
        if isinstance(self.generation, dict):
            self.generation = GenerationSettings(**self.generation)

    def get_api_key(self) -> Optional[str]:
        """Get API key from config or environment."""
        return self.api_key or os.environ.get(self.api_key_env)

    def get_model(self) -> str:
        """Get model name from config or environment."""
        return self.model or os.environ.get("GEMINI_MODEL") or DEFAULT_MODEL

    def deep_thinking_enabled(self) -> bool:
        if self.enable_deep_thinking is not None:
            return self.enable_deep_thinking
        return _env_flag("ENABLE_DEEP_THINKING")

    def tdd_enabled(self) -> bool:
        if self.enable_tdd is not None:
            return self.enable_tdd
        return _env_flag("ENABLE_TDD")
