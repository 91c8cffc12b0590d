"""Tests for the Gemini gateway and its prompt builders."""

from types import SimpleNamespace

import pytest
from google.genai import errors

from src.assistant import (
    DEFAULT_MODEL,
    AssistantAPIError,
    AssistantAuthError,
    AssistantConfig,
    GeminiClient,
    agent_prompt,
    chat_prompt,
    deep_think_prompt,
    parse_json_reply,
    review_prompt,
    tdd_prompt,
)


class FakeAPIError(errors.APIError):
    def __init__(self, code, message="rejected"):
        Exception.__init__(self, f"{code} {message}")
        self.code = code
        self.status = None
        self.message = message
        self.details = {}
        self.response = None


class FakeModels:
    """Stands in for ``genai.Client().aio.models``."""

    def __init__(self, reply="ok", chunks=None, error=None):
        self.reply = reply
        self.chunks = chunks or []
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)

    async def generate_content_stream(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error

        async def stream():
            for chunk in self.chunks:
                yield SimpleNamespace(text=chunk)

        return stream()


def make_client(models, **config):
    fake = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiClient(AssistantConfig(**config), client=fake)


class TestAssistantConfig:
    """Tests for AssistantConfig."""

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        assert AssistantConfig().get_api_key() == "env-key"
        assert AssistantConfig(api_key="explicit").get_api_key() == "explicit"

    def test_model_default_and_env(self, monkeypatch):
        monkeypatch.delenv("GEMINI_MODEL", raising=False)
        assert AssistantConfig().get_model() == DEFAULT_MODEL
        monkeypatch.setenv("GEMINI_MODEL", "gemini-pro")
        assert AssistantConfig().get_model() == "gemini-pro"
        assert AssistantConfig(model="pinned").get_model() == "pinned"

    def test_feature_flags(self, monkeypatch):
        monkeypatch.setenv("ENABLE_DEEP_THINKING", "true")
        monkeypatch.setenv("ENABLE_TDD", "yes")
        config = AssistantConfig()
        assert config.deep_thinking_enabled() is True
        assert config.tdd_enabled() is False
        assert AssistantConfig(enable_tdd=True).tdd_enabled() is True

    def test_generation_from_dict(self):
        config = AssistantConfig(generation={"temperature": 0.1})
        assert config.generation.temperature == 0.1
        assert config.generation.top_k == 40


class TestPrompts:
    """Tests for prompt builders."""

    def test_chat_prompt(self):
        messages = [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi"},
        ]
        assert chat_prompt(messages) == "user: hello\nassistant: hi"
        assert chat_prompt(messages, "Be brief.") == "Be brief.\n\nuser: hello\nassistant: hi"

    def test_modes_embed_prompt_and_context(self):
        context = {"file": "app.js"}
        for builder, marker in (
            (deep_think_prompt, "DEEP THINKING MODE"),
            (tdd_prompt, "TEST-DRIVEN DEVELOPMENT MODE"),
        ):
            text = builder("add a button", context)
            assert marker in text
            assert "add a button" in text
            assert '"file": "app.js"' in text

    def test_agent_prompt(self):
        text = agent_prompt("rename module", {"src": ["a.py"]})
        assert "AGENTIC WORKFLOW" in text
        assert '"fileOperations"' in text
        assert "rename module" in text

    def test_review_prompt(self):
        text = review_prompt("x = 1", "python")
        assert "```python\nx = 1\n```" in text
        assert "Context: {}" in text


class TestParseJsonReply:
    """Tests for parse_json_reply."""

    def test_plain_object(self):
        assert parse_json_reply('{"quality": "8"}') == {"quality": "8"}

    def test_fenced_object(self):
        text = 'Here you go:\n```json\n{"plan": ["a", "b"]}\n```\nDone.'
        assert parse_json_reply(text) == {"plan": ["a", "b"]}

    def test_not_json(self):
        assert parse_json_reply("no braces here") == {"raw": "no braces here"}

    def test_broken_json(self):
        assert parse_json_reply("{not: valid}") == {"raw": "{not: valid}"}

    def test_empty(self):
        assert parse_json_reply("") == {"raw": ""}


class TestGeminiClient:
    """Tests for GeminiClient."""

    def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        client = GeminiClient(AssistantConfig())
        assert client.is_configured is False

    @pytest.mark.asyncio
    async def test_missing_key_raises(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        client = GeminiClient(AssistantConfig())
        with pytest.raises(AssistantAuthError):
            await client.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_chat(self):
        models = FakeModels(reply="Hello there")
        client = make_client(models, model="gemini-test")

        reply = await client.chat([{"role": "user", "content": "hi"}], "sys")

        assert reply == "Hello there"
        call = models.calls[0]
        assert call["model"] == "gemini-test"
        assert call["contents"] == "sys\n\nuser: hi"
        assert call["config"].temperature == 0.7
        assert call["config"].top_k == 40
        assert call["config"].max_output_tokens == 8192
        assert len(call["config"].safety_settings) == 4

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        client = make_client(FakeModels(reply=None))
        assert await client.deep_think("why") == ""

    @pytest.mark.asyncio
    async def test_agentic_workflow_parses_plan(self):
        models = FakeModels(reply='```json\n{"thinking": "t", "plan": ["edit"]}\n```')
        client = make_client(models)

        plan = await client.agentic_workflow("do it", {"a.py": "x"})

        assert plan == {"thinking": "t", "plan": ["edit"]}
        assert models.calls[0]["config"].temperature == 0.4

    @pytest.mark.asyncio
    async def test_review_falls_back_to_raw(self):
        client = make_client(FakeModels(reply="Looks fine."))
        assert await client.review_code("x = 1", "python") == {"raw": "Looks fine."}

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        client = make_client(FakeModels(error=FakeAPIError(403)))
        with pytest.raises(AssistantAuthError):
            await client.generate_with_tests("write a parser")

    @pytest.mark.asyncio
    async def test_api_failure(self):
        client = make_client(FakeModels(error=FakeAPIError(429, "quota")))
        with pytest.raises(AssistantAPIError) as exc_info:
            await client.chat([{"role": "user", "content": "hi"}])
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_stream_chat(self):
        client = make_client(FakeModels(chunks=["Hel", "", "lo"]))
        chunks = [chunk async for chunk in client.stream_chat("say hello")]
        assert chunks == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_stream_failure(self):
        client = make_client(FakeModels(error=FakeAPIError(500, "down")))
        with pytest.raises(AssistantAPIError):
            async for _ in client.stream_chat("say hello"):
                pass
