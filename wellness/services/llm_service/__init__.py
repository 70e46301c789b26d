"""LLM Service: AI backend access and prompt construction.

The AI backend only ever sees messages the Safety Service did not
classify as CRITICAL.
"""

from .base_llm import (
    BaseLLM,
    HuggingFaceLLM,
    LLMConfig,
    LLMProvider,
    LLMResponse,
    LLMUnavailableError,
    OpenAILLM,
    SafetyBlockedError,
    create_llm,
)
from .prompts import Technique, TherapyPromptSystem, get_prompt_system
from .runner import AsyncRunner, get_async_runner

__version__ = "0.1.0"

__all__ = [
    "BaseLLM",
    "HuggingFaceLLM",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "LLMUnavailableError",
    "OpenAILLM",
    "SafetyBlockedError",
    "create_llm",
    "Technique",
    "TherapyPromptSystem",
    "get_prompt_system",
    "AsyncRunner",
    "get_async_runner",
]
