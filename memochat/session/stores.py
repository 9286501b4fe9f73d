"""Chat persistence interfaces and in-memory implementations."""

from __future__ import annotations

import copy
from typing import Protocol

from memochat.session.models import ChatMessage, ChatParticipant, ChatSession


class ChatSessionStore(Protocol):
    async def find_by_id(self, chat_id: str) -> ChatSession | None: ...

    async def create(self, session: ChatSession) -> None: ...

    async def upsert(self, session: ChatSession) -> None: ...


class ChatParticipantStore(Protocol):
    async def create(self, participant: ChatParticipant) -> None: ...

    async def find_by_chat_id(self, chat_id: str) -> list[ChatParticipant]: ...

    async def is_user_in_chat(self, user_id: str, chat_id: str) -> bool: ...


class ChatMessageStore(Protocol):
    async def create(self, message: ChatMessage) -> None: ...

    async def upsert(self, message: ChatMessage) -> None: ...

    async def find_by_id(self, message_id: str) -> ChatMessage | None: ...

    async def find_by_chat_id(self, chat_id: str, skip: int = 0, count: int = -1) -> list[ChatMessage]:
        """Messages of *chat_id*, newest first."""
        ...


def newest_first(messages: list[ChatMessage], skip: int = 0, count: int = -1) -> list[ChatMessage]:
    """Order *messages* (given oldest-first) newest-first and apply paging.

    Messages sharing a timestamp keep reverse insertion order.
    """
    ordered = sorted(reversed(messages), key=lambda m: m.timestamp, reverse=True)
    ordered = ordered[max(0, skip):]
    return ordered if count < 0 else ordered[:count]


class VolatileChatSessionStore:
    """Sessions kept in process memory. Stored and returned objects are copies."""

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}

    async def find_by_id(self, chat_id: str) -> ChatSession | None:
        session = self._sessions.get(chat_id)
        return copy.deepcopy(session) if session is not None else None

    async def create(self, session: ChatSession) -> None:
        if session.id in self._sessions:
            raise ValueError(f"Chat session {session.id} already exists")
        self._sessions[session.id] = copy.deepcopy(session)

    async def upsert(self, session: ChatSession) -> None:
        self._sessions[session.id] = copy.deepcopy(session)


class VolatileChatParticipantStore:
    def __init__(self) -> None:
        self._participants: dict[str, ChatParticipant] = {}

    async def create(self, participant: ChatParticipant) -> None:
        self._participants[participant.id] = copy.deepcopy(participant)

    async def find_by_chat_id(self, chat_id: str) -> list[ChatParticipant]:
        return [copy.deepcopy(p) for p in self._participants.values() if p.chat_id == chat_id]

    async def is_user_in_chat(self, user_id: str, chat_id: str) -> bool:
        return any(p.user_id == user_id and p.chat_id == chat_id for p in self._participants.values())


class VolatileChatMessageStore:
    """Messages kept in process memory, in insertion order."""

    def __init__(self) -> None:
        self._messages: dict[str, ChatMessage] = {}

    async def create(self, message: ChatMessage) -> None:
        if message.id in self._messages:
            raise ValueError(f"Chat message {message.id} already exists")
        self._messages[message.id] = copy.deepcopy(message)

    async def upsert(self, message: ChatMessage) -> None:
        self._messages[message.id] = copy.deepcopy(message)

    async def find_by_id(self, message_id: str) -> ChatMessage | None:
        message = self._messages.get(message_id)
        return copy.deepcopy(message) if message is not None else None

    async def find_by_chat_id(self, chat_id: str, skip: int = 0, count: int = -1) -> list[ChatMessage]:
        in_chat = [m for m in self._messages.values() if m.chat_id == chat_id]
        return [copy.deepcopy(m) for m in newest_first(in_chat, skip, count)]
