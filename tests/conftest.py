import asyncio
from datetime import datetime
from typing import Any, AsyncIterator

import pytest

from memochat.agent.tokens import TokenAccountant
from memochat.channels.broadcast import BroadcastHub
from memochat.config.schema import Config
from memochat.memory.store import VolatileMemoryStore
from memochat.providers.base import CompletionSettings, LLMProvider, LLMResponse
from memochat.service import ChatService
from memochat.session.models import ChatParticipant, ChatSession
from memochat.session.stores import (
    VolatileChatMessageStore,
    VolatileChatParticipantStore,
    VolatileChatSessionStore,
)

FIXED_NOW = datetime(2024, 5, 6, 12, 0, 0)


class WordEncoder:
    """One token per whitespace-separated word."""

    def encode(self, text: str) -> list[str]:
        return text.split()


class ScriptedProvider(LLMProvider):
    """Answers extraction prompts by marker and streams fixed deltas."""

    def __init__(
        self,
        *,
        replies: list[tuple[str, Any]] | None = None,
        deltas: tuple[str, ...] = ("Hello", " world"),
        usage: int = 7,
        stream_error: str | None = None,
        hang_after: int | None = None,
        stream_exception: BaseException | None = None,
    ):
        super().__init__()
        self.replies = list(replies or [])
        self.deltas = deltas
        self.usage = usage
        self.stream_error = stream_error
        self.hang_after = hang_after
        self.stream_exception = stream_exception
        self.chat_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.stream_closed = False
        self.deltas_sent = 0

    async def chat(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        self.chat_calls.append({"messages": messages, "settings": settings, "model": model})
        prompt = messages[-1]["content"]
        for marker, reply in self.replies:
            if marker in prompt:
                if isinstance(reply, BaseException):
                    raise reply
                if isinstance(reply, LLMResponse):
                    return reply
                return LLMResponse(content=reply, usage={"total_tokens": self.usage})
        return LLMResponse(content="", usage={"total_tokens": self.usage})

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None = None,
        model: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        self.stream_calls.append({"messages": messages, "settings": settings, "model": model})
        try:
            for index, delta in enumerate(self.deltas):
                if self.hang_after is not None and index == self.hang_after:
                    await asyncio.Event().wait()
                self.deltas_sent += 1
                yield {"type": "text_delta", "delta": delta}
            if self.hang_after is not None and self.hang_after >= len(self.deltas):
                await asyncio.Event().wait()
            if self.stream_exception is not None:
                raise self.stream_exception
            if self.stream_error:
                yield {"type": "done", "response": LLMResponse(content=self.stream_error, finish_reason="error")}
            else:
                yield {
                    "type": "done",
                    "response": LLMResponse(content="".join(self.deltas), usage={"total_tokens": 42}),
                }
        finally:
            self.stream_closed = True

    def get_default_model(self) -> str:
        return "fake-model"


@pytest.fixture
def word_tokens() -> TokenAccountant:
    return TokenAccountant(WordEncoder())


@pytest.fixture
def make_provider():
    return ScriptedProvider


@pytest.fixture
def make_service(word_tokens):
    def _make(provider: LLMProvider, *, config: Config | None = None, memory=None, hub: BroadcastHub | None = None):
        return ChatService(
            config=config or Config(),
            provider=provider,
            sessions=VolatileChatSessionStore(),
            participants=VolatileChatParticipantStore(),
            messages=VolatileChatMessageStore(),
            memory=memory if memory is not None else VolatileMemoryStore(),
            broadcaster=hub,
            tokens=word_tokens,
            now=lambda: FIXED_NOW,
        )

    return _make


@pytest.fixture
def seed_chat():
    async def _seed(service: ChatService, user_id: str, *, balance: float = 0.5, description: str | None = None) -> ChatSession:
        session = ChatSession(
            title="test chat",
            system_description=description or service.config.prompts.system_description,
            memory_balance=balance,
        )
        await service.sessions.create(session)
        await service.participants.create(ChatParticipant(user_id=user_id, chat_id=session.id))
        return session

    return _seed
