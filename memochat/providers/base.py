"""Base LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


@dataclass
class CompletionSettings:
    """Sampling parameters for one completion request."""

    max_tokens: int = 1024
    temperature: float = 0.7
    top_p: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    stop: list[str] | None = None

    def as_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "max_tokens": max(1, self.max_tokens),
            "temperature": self.temperature,
            "top_p": self.top_p,
            "presence_penalty": self.presence_penalty,
            "frequency_penalty": self.frequency_penalty,
        }
        if self.stop:
            kwargs["stop"] = list(self.stop)
        return kwargs


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.finish_reason == "error"

    @property
    def total_tokens(self) -> int | None:
        value = self.usage.get("total_tokens")
        return int(value) if value is not None else None


class LLMProvider(ABC):
    """
    Abstract base class for completion providers.

    Implementations report failures as an ``LLMResponse`` with
    ``finish_reason="error"`` instead of raising.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Run a non-streaming chat completion."""

    @abstractmethod
    def stream_chat(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None = None,
        model: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat completion.

        Yields ``{"type": "text_delta", "delta": str}`` events followed by a
        single ``{"type": "done", "response": LLMResponse}``.
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
