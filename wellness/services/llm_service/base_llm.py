"""AI backends for the assistant.

BaseLLM owns the request lifecycle (prompt validation, timing, logging);
providers only translate a chat transcript into one API call. Two
providers are supported: OpenAI chat completions and HuggingFace
Inference endpoints.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp
import openai

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 10000


class LLMUnavailableError(Exception):
    """No AI backend is configured or reachable."""
    pass


class SafetyBlockedError(Exception):
    """The provider refused to generate content for safety reasons."""
    pass


class LLMProvider(Enum):
    """Supported LLM providers."""
    HUGGINGFACE = "huggingface"
    OPENAI = "openai"


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for LLM inference."""
    provider: LLMProvider
    model_name: str
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    max_tokens: int = 1000
    temperature: float = 0.7
    top_p: float = 0.95
    timeout_seconds: int = 30

    @property
    def is_configured(self) -> bool:
        """True when the provider has the credentials it needs."""
        if self.provider == LLMProvider.OPENAI:
            return bool(self.api_key)
        return bool(self.endpoint)

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Build configuration from environment variables.

        OPENAI_API_KEY selects OpenAI (OPENAI_BASE_URL overrides its API
        root); otherwise HUGGINGFACE_ENDPOINT selects a HuggingFace
        Inference endpoint. With neither set the returned
        config reports is_configured == False.
        """
        api_key = os.getenv("OPENAI_API_KEY")
        endpoint = os.getenv("HUGGINGFACE_ENDPOINT")

        if not api_key and endpoint:
            provider = LLMProvider.HUGGINGFACE
            api_key = os.getenv("HUGGINGFACE_API_KEY")
            default_model = "huggingface-endpoint"
        else:
            provider = LLMProvider.OPENAI
            endpoint = os.getenv("OPENAI_BASE_URL")
            default_model = "gpt-4o-mini"

        return cls(
            provider=provider,
            model_name=os.getenv("AI_MODEL", default_model),
            endpoint=endpoint,
            api_key=api_key,
            max_tokens=int(os.getenv("AI_MAX_TOKENS", "1000")),
            temperature=float(os.getenv("AI_TEMPERATURE", "0.7")),
            top_p=float(os.getenv("AI_TOP_P", "0.95")),
            timeout_seconds=int(os.getenv("AI_TIMEOUT_SECONDS", "30")),
        )


@dataclass
class LLMResponse:
    """Response from LLM inference."""
    text: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    latency_ms: Optional[float] = None
    metadata: Optional[Dict] = None


@dataclass
class Completion:
    """Raw provider output before it is wrapped in an LLMResponse."""
    text: str
    tokens_used: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class BaseLLM(ABC):
    """Abstract base class for LLM implementations."""

    def __init__(self, config: LLMConfig):
        self.config = config
        logger.info(
            "LLM_INITIALIZED",
            extra={
                "provider": config.provider.value,
                "model": config.model_name
            }
        )

    @abstractmethod
    async def _complete(self, messages: List[Dict[str, str]]) -> Completion:
        """Send one chat transcript to the provider.

        Raises:
            SafetyBlockedError: If the provider blocked the content
        """

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """Generate one reply.

        Args:
            prompt: User turn
            system_prompt: Optional instructions sent ahead of the user turn

        Returns:
            LLMResponse with text, token usage and latency

        Raises:
            ValueError: If prompt is blank or too long
            SafetyBlockedError: If the provider blocked the content
        """
        if not self.validate_prompt(prompt):
            raise ValueError("Invalid prompt")

        start_time = time.time()

        try:
            completion = await self._complete(build_messages(prompt, system_prompt))
        except SafetyBlockedError:
            logger.warning(
                "LLM_SAFETY_BLOCK",
                extra={"provider": self.config.provider.value, "model": self.config.model_name}
            )
            raise
        except Exception as e:
            logger.error(
                "LLM_GENERATION_FAILED",
                extra={
                    "provider": self.config.provider.value,
                    "model": self.config.model_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise

        latency_ms = (time.time() - start_time) * 1000

        logger.info(
            "LLM_GENERATION_SUCCEEDED",
            extra={
                "provider": self.config.provider.value,
                "model": self.config.model_name,
                "latency_ms": latency_ms,
                "tokens_used": completion.tokens_used,
            }
        )

        return LLMResponse(
            text=completion.text,
            model=self.config.model_name,
            provider=self.config.provider.value,
            tokens_used=completion.tokens_used,
            latency_ms=latency_ms,
            metadata=completion.metadata or None,
        )

    async def generate_batch(
        self,
        prompts: List[str],
        system_prompt: Optional[str] = None,
    ) -> List[LLMResponse]:
        """Generate replies for several prompts concurrently."""
        return await asyncio.gather(*(
            self.generate(prompt, system_prompt) for prompt in prompts
        ))

    def validate_prompt(self, prompt: str) -> bool:
        if not prompt or not prompt.strip():
            logger.warning("LLM_EMPTY_PROMPT")
            return False

        if len(prompt) > MAX_PROMPT_CHARS:
            logger.warning(
                "LLM_PROMPT_TOO_LONG",
                extra={"length": len(prompt)}
            )
            return False

        return True


class HuggingFaceLLM(BaseLLM):
    """HuggingFace Inference endpoint (text-generation task).

    The endpoint takes a single string, so the transcript is flattened
    with the system turn first.
    """

    def __init__(self, config: LLMConfig):
        super().__init__(config)

        if not config.endpoint:
            raise ValueError("HuggingFace endpoint required")

        self.endpoint = config.endpoint
        self.headers = {}
        if config.api_key:
            self.headers["Authorization"] = f"Bearer {config.api_key}"

    async def _complete(self, messages: List[Dict[str, str]]) -> Completion:
        payload = {
            "inputs": "\n\n".join(m["content"] for m in messages),
            "parameters": {
                "max_new_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "top_p": self.config.top_p,
                "return_full_text": False,
            },
        }
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.endpoint,
                headers=self.headers,
                json=payload,
                timeout=timeout,
            ) as response:
                response.raise_for_status()
                result = await response.json()

        # Endpoints answer with either [{...}] or {...}
        if isinstance(result, list):
            result = result[0] if result else {}

        return Completion(
            text=result.get("generated_text", ""),
            metadata={"endpoint": self.endpoint},
        )


class OpenAILLM(BaseLLM):
    """OpenAI chat completions.

    The client pools connections on the event loop of its first request;
    drive every call from one loop (see runner.AsyncRunner).
    """

    def __init__(self, config: LLMConfig):
        super().__init__(config)

        if not config.api_key:
            raise ValueError("OpenAI API key required")

        self.client = openai.AsyncOpenAI(api_key=config.api_key, base_url=config.endpoint)

    async def _complete(self, messages: List[Dict[str, str]]) -> Completion:
        response = await self.client.chat.completions.create(
            model=self.config.model_name,
            messages=messages,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
            timeout=self.config.timeout_seconds,
        )
        choice = response.choices[0]

        if choice.finish_reason == "content_filter":
            raise SafetyBlockedError("SAFETY: response blocked by content filter")

        return Completion(
            text=choice.message.content or "",
            tokens_used=response.usage.total_tokens if response.usage else None,
        )


def create_llm(config: LLMConfig) -> BaseLLM:
    """Build the backend for config.provider.

    Raises:
        ValueError: If the provider is unsupported or missing credentials
    """
    if config.provider == LLMProvider.HUGGINGFACE:
        return HuggingFaceLLM(config)
    if config.provider == LLMProvider.OPENAI:
        return OpenAILLM(config)
    raise ValueError(f"Unsupported provider: {config.provider}")
