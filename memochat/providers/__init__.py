"""LLM provider abstraction module."""

from memochat.providers.base import CompletionSettings, LLMProvider, LLMResponse
from memochat.providers.litellm_provider import LiteLLMProvider

__all__ = ["CompletionSettings", "LLMProvider", "LLMResponse", "LiteLLMProvider"]
