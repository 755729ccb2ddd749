"""
Tests for TutorConfig and the Gemini client wrapper (no network).
"""

import pytest
from pydantic import ValidationError

from tutor_engine.chatbot.llm_client import LLMClient
from tutor_engine.config import TutorConfig
from tutor_engine.errors import GenerationError
from tutor_engine.schema.core_schema import GenerationRequest, QuizAnswerKey


class FakeResponse:
    def __init__(self, content):
        self.content = content


class FakeChatModel:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.inputs = []

    async def ainvoke(self, messages):
        self.inputs.append(messages)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.content)


def offline_client(model: FakeChatModel) -> LLMClient:
    # skip __init__ so no Gemini client is built
    client = LLMClient.__new__(LLMClient)
    client.config = TutorConfig(api_key="test-key")
    client.model = "gemini-2.0-flash"
    client._llms = {0.7: model, 0.2: model, 0.0: model}
    client._llm = client._structured_llm = model
    return client


class TestTutorConfig:
    def test_defaults(self):
        config = TutorConfig()
        assert config.memory_capacity == 100
        assert config.simple_token_ceiling == 15
        assert config.duplicate_window_seconds == 2.0
        assert config.search_cache_ttl_seconds == 300.0
        assert config.validate_replies

    def test_from_env(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("TUTOR_MEMORY_CAPACITY=50\n", encoding="utf-8")
        # registered so the value loaded from .env is removed afterwards
        monkeypatch.setenv("TUTOR_MEMORY_CAPACITY", "0")
        monkeypatch.delenv("TUTOR_MEMORY_CAPACITY")
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.setenv("TUTOR_SIMPLE_TOKEN_CEILING", "12")
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")

        config = TutorConfig.from_env(str(env_file))

        assert config.simple_token_ceiling == 12
        assert config.memory_capacity == 50
        assert config.api_key == "gemini-key"

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            TutorConfig(memory_capacity=0)


class TestLLMClient:
    def test_missing_api_key(self):
        with pytest.raises(ValueError):
            LLMClient(config=TutorConfig(api_key=None))

    @pytest.mark.asyncio
    async def test_generate_sends_system_and_prompt(self):
        model = FakeChatModel("Gravity pulls.")
        client = offline_client(model)

        text = await client.generate(GenerationRequest(prompt="Explain gravity", system_prompt="Be a tutor"))

        assert text == "Gravity pulls."
        system, human = model.inputs[0]
        assert system.content == "Be a tutor"
        assert human == ("human", "Explain gravity")

    @pytest.mark.asyncio
    async def test_multipart_content_is_joined(self):
        client = offline_client(FakeChatModel([{"type": "text", "text": "Hello "}, "world"]))
        assert await client.generate(GenerationRequest(prompt="hi")) == "Hello world"

    @pytest.mark.asyncio
    async def test_empty_content_raises(self):
        client = offline_client(FakeChatModel("   "))
        with pytest.raises(GenerationError):
            await client.generate(GenerationRequest(prompt="hi"))

    @pytest.mark.asyncio
    async def test_gateway_error_is_wrapped(self):
        client = offline_client(FakeChatModel(error=RuntimeError("quota")))
        with pytest.raises(GenerationError, match="quota"):
            await client.generate(GenerationRequest(prompt="hi"))

    @pytest.mark.asyncio
    async def test_extract_quiz_key_validates_letter(self, monkeypatch):
        client = offline_client(FakeChatModel())
        keys = [QuizAnswerKey(correct_letter="b", explanation="x"), QuizAnswerKey(correct_letter="E")]

        async def fake_structured(model, system_prompt, user_template, variables=None):
            return keys.pop(0)

        monkeypatch.setattr(client, "generate_structured", fake_structured)

        assert (await client.extract_quiz_key("Q? A) 1 B) 2 C) 3 D) 4")).correct_letter == "b"
        assert await client.extract_quiz_key("Q? A) 1 B) 2 C) 3 D) 4") is None
