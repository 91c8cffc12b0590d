"""
Gemini gateway.

Wraps the google-genai async client with the assistant modes used by the
editor: chat, deep thinking, TDD, agentic planning, code review and
streaming chat.
"""

import logging
from typing import AsyncIterator, Iterable, Mapping, Optional

import httpx
from google import genai
from google.genai import errors, types

from .config import AssistantConfig
from .exceptions import AssistantAPIError, AssistantAuthError
from .prompts import (
    agent_prompt,
    chat_prompt,
    deep_think_prompt,
    parse_json_reply,
    review_prompt,
    stream_prompt,
    tdd_prompt,
)

logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Client for the Gemini generative-language API.

    The underlying ``genai.Client`` is created on first use so a server
    without an API key can still start; requests then fail with
    AssistantAuthError.
    """

    def __init__(self, config: Optional[AssistantConfig] = None, client=None):
        """
        Initialize the gateway.

        Args:
            config: Assistant configuration
            client: Preconfigured genai.Client (or a stand-in with the same
                ``aio.models`` interface)
        """
        self.config = config or AssistantConfig()
        self._client = client

    @property
    def model(self) -> str:
        return self.config.get_model()

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.config.get_api_key())

    def _get_client(self):
        if self._client is None:
            api_key = self.config.get_api_key()
            if not api_key:
                raise AssistantAuthError(
                    f"{self.config.api_key_env} is not set in environment variables"
                )
            self._client = genai.Client(api_key=api_key)
        return self._client

    def _generation_config(self, temperature: Optional[float] = None) -> types.GenerateContentConfig:
        gen = self.config.generation
        return types.GenerateContentConfig(
            temperature=gen.temperature if temperature is None else temperature,
            top_k=gen.top_k,
            top_p=gen.top_p,
            max_output_tokens=gen.max_output_tokens,
            safety_settings=[
                types.SafetySetting(category=category, threshold=self.config.safety_threshold)
                for category in self.config.safety_categories
            ],
        )

    async def _generate(self, prompt: str, temperature: Optional[float] = None) -> str:
        client = self._get_client()
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=self._generation_config(temperature),
            )
        except errors.APIError as e:
            if e.code in (401, 403):
                raise AssistantAuthError(f"Gemini rejected the API key: {e}") from e
            raise AssistantAPIError(f"Gemini request failed: {e}", status_code=e.code) from e
        except httpx.HTTPError as e:
            raise AssistantAPIError(f"Gemini request failed: {e}") from e

        return response.text or ""

    async def chat(self, messages: Iterable[Mapping], system_prompt: str = "") -> str:
        """Standard chat completion over a role/content transcript."""
        return await self._generate(chat_prompt(messages, system_prompt))

    async def deep_think(self, prompt: str, context: Optional[Mapping] = None) -> str:
        """Chain-of-thought answer: thinking trace first, then the solution."""
        return await self._generate(deep_think_prompt(prompt, context))

    async def generate_with_tests(self, prompt: str, context: Optional[Mapping] = None) -> str:
        return await self._generate(tdd_prompt(prompt, context))

    async def agentic_workflow(self, task: str, file_system: Optional[Mapping] = None) -> dict:
        """
        Plan file operations for a task.

        Returns:
            Parsed JSON plan (thinking, plan, fileOperations, tests,
            verification), or ``{"raw": text}`` if the reply is not JSON
        """
        text = await self._generate(
            agent_prompt(task, file_system),
            temperature=self.config.agent_temperature,
        )
        return parse_json_reply(text)

    async def review_code(self, code: str, language: str, context: Optional[Mapping] = None) -> dict:
        text = await self._generate(review_prompt(code, language, context))
        return parse_json_reply(text)

    async def stream_chat(self, prompt: str, context: Optional[Mapping] = None) -> AsyncIterator[str]:
        """Yield reply text chunks as they arrive."""
        client = self._get_client()
        try:
            stream = await client.aio.models.generate_content_stream(
                model=self.model,
                contents=stream_prompt(prompt, context),
                config=self._generation_config(),
            )
            async for chunk in stream:
                if chunk.text:
                    yield chunk.text
        except errors.APIError as e:
            raise AssistantAPIError(f"Gemini stream failed: {e}", status_code=e.code) from e
        except httpx.HTTPError as e:
            raise AssistantAPIError(f"Gemini stream failed: {e}") from e
