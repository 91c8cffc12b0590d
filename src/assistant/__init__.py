"""
AI Gateway

Proxies editor prompts to the Gemini API: chat, deep thinking, TDD,
agentic planning, code review and streaming replies.
"""

from .config import AssistantConfig, GenerationSettings, DEFAULT_MODEL
from .exceptions import AssistantError, AssistantAuthError, AssistantAPIError
from .prompts import (
    chat_prompt,
    deep_think_prompt,
    tdd_prompt,
    agent_prompt,
    review_prompt,
    stream_prompt,
    parse_json_reply,
)
from .client import GeminiClient

__all__ = [
    "AssistantConfig",
    "GenerationSettings",
    "DEFAULT_MODEL",
    "AssistantError",
    "AssistantAuthError",
    "AssistantAPIError",
    "chat_prompt",
    "deep_think_prompt",
    "tdd_prompt",
    "agent_prompt",
    "review_prompt",
    "stream_prompt",
    "parse_json_reply",
    "GeminiClient",
]
