"""Tests for LLM provider wrappers (network calls mocked)."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wellness.services.llm_service.base_llm import (
    HuggingFaceLLM,
    LLMConfig,
    LLMProvider,
    OpenAILLM,
    SafetyBlockedError,
    create_llm,
)

ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "HUGGINGFACE_ENDPOINT",
    "HUGGINGFACE_API_KEY",
    "AI_MODEL",
    "AI_TEMPERATURE",
    "AI_TOP_P",
    "AI_MAX_TOKENS",
    "AI_TIMEOUT_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _completion(content="Estou aqui com você.", finish_reason="stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(
            message=SimpleNamespace(content=content),
            finish_reason=finish_reason,
        )],
        usage=SimpleNamespace(total_tokens=42),
    )


class TestLLMConfigFromEnv:

    def test_defaults_without_credentials(self, clean_env):
        config = LLMConfig.from_env()

        assert config.provider == LLMProvider.OPENAI
        assert config.model_name == "gpt-4o-mini"
        assert config.temperature == 0.7
        assert config.top_p == 0.95
        assert config.max_tokens == 1000
        assert config.is_configured is False

    def test_openai_from_env(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("AI_MODEL", "gpt-4o")
        clean_env.setenv("AI_TEMPERATURE", "0.2")
        clean_env.setenv("AI_TOP_P", "0.5")
        clean_env.setenv("AI_MAX_TOKENS", "256")

        config = LLMConfig.from_env()

        assert config.provider == LLMProvider.OPENAI
        assert config.api_key == "sk-test"
        assert config.model_name == "gpt-4o"
        assert config.temperature == 0.2
        assert config.top_p == 0.5
        assert config.max_tokens == 256
        assert config.is_configured is True

    def test_openai_base_url_override(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("OPENAI_BASE_URL", "http://127.0.0.1:9000/v1")
        clean_env.setenv("HUGGINGFACE_ENDPOINT", "https://hf.example/endpoint")

        config = LLMConfig.from_env()

        assert config.provider == LLMProvider.OPENAI
        assert config.endpoint == "http://127.0.0.1:9000/v1"

    def test_huggingface_when_only_endpoint_set(self, clean_env):
        clean_env.setenv("HUGGINGFACE_ENDPOINT", "https://hf.example/endpoint")
        clean_env.setenv("HUGGINGFACE_API_KEY", "hf-token")

        config = LLMConfig.from_env()

        assert config.provider == LLMProvider.HUGGINGFACE
        assert config.endpoint == "https://hf.example/endpoint"
        assert config.api_key == "hf-token"
        assert config.is_configured is True


class TestCreateLLM:

    @patch('wellness.services.llm_service.base_llm.openai.AsyncOpenAI')
    def test_creates_openai(self, mock_client_cls):
        llm = create_llm(LLMConfig(provider=LLMProvider.OPENAI, model_name="m", api_key="k"))

        assert isinstance(llm, OpenAILLM)
        mock_client_cls.assert_called_once_with(api_key="k", base_url=None)

    def test_creates_huggingface(self):
        llm = create_llm(LLMConfig(
            provider=LLMProvider.HUGGINGFACE,
            model_name="m",
            endpoint="https://hf.example",
            api_key="tok",
        ))

        assert isinstance(llm, HuggingFaceLLM)
        assert llm.headers == {"Authorization": "Bearer tok"}

    def test_openai_requires_key(self):
        with pytest.raises(ValueError):
            create_llm(LLMConfig(provider=LLMProvider.OPENAI, model_name="m"))

    def test_huggingface_requires_endpoint(self):
        with pytest.raises(ValueError):
            create_llm(LLMConfig(provider=LLMProvider.HUGGINGFACE, model_name="m"))


class TestPromptValidation:

    def _llm(self):
        return HuggingFaceLLM(LLMConfig(
            provider=LLMProvider.HUGGINGFACE, model_name="m", endpoint="https://hf.example"
        ))

    def test_blank_prompt_invalid(self):
        assert self._llm().validate_prompt("   ") is False

    def test_overlong_prompt_invalid(self):
        assert self._llm().validate_prompt("x" * 10001) is False

    def test_normal_prompt_valid(self):
        assert self._llm().validate_prompt("Olá") is True


@pytest.mark.asyncio
class TestOpenAIGenerate:

    @pytest.fixture
    def llm(self):
        with patch('wellness.services.llm_service.base_llm.openai.AsyncOpenAI') as mock_cls:
            mock_cls.return_value.chat.completions.create = AsyncMock(
                return_value=_completion()
            )
            yield OpenAILLM(LLMConfig(
                provider=LLMProvider.OPENAI, model_name="gpt-test", api_key="k"
            ))

    async def test_generate_returns_text(self, llm):
        response = await llm.generate("Oi", system_prompt="Seja gentil")

        assert response.text == "Estou aqui com você."
        assert response.tokens_used == 42
        assert response.provider == "openai"

        call_kwargs = llm.client.chat.completions.create.call_args.kwargs
        assert call_kwargs["model"] == "gpt-test"
        assert call_kwargs["messages"] == [
            {"role": "system", "content": "Seja gentil"},
            {"role": "user", "content": "Oi"},
        ]

    async def test_content_filter_raises_safety_block(self, llm):
        llm.client.chat.completions.create.return_value = _completion(
            content=None, finish_reason="content_filter"
        )

        with pytest.raises(SafetyBlockedError):
            await llm.generate("Oi")

    async def test_provider_error_propagates(self, llm):
        llm.client.chat.completions.create.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await llm.generate("Oi")

    async def test_invalid_prompt_rejected(self, llm):
        with pytest.raises(ValueError):
            await llm.generate("")

    async def test_generate_batch(self, llm):
        responses = await llm.generate_batch(["a", "b"])

        assert len(responses) == 2


@pytest.mark.asyncio
class TestHuggingFaceGenerate:

    @patch('wellness.services.llm_service.base_llm.aiohttp.ClientSession')
    async def test_generate_returns_text(self, mock_session_cls):
        http_response = MagicMock()
        http_response.json = AsyncMock(return_value=[{"generated_text": "Olá!"}])
        session = MagicMock()
        session.post.return_value.__aenter__.return_value = http_response
        mock_session_cls.return_value.__aenter__.return_value = session

        llm = HuggingFaceLLM(LLMConfig(
            provider=LLMProvider.HUGGINGFACE, model_name="hf", endpoint="https://hf.example"
        ))

        response = await llm.generate("Oi", system_prompt="Sistema")

        assert response.text == "Olá!"
        assert response.metadata == {"endpoint": "https://hf.example"}
        payload = session.post.call_args.kwargs["json"]
        assert payload["inputs"] == "Sistema\n\nOi"
        assert payload["parameters"]["max_new_tokens"] == 1000
