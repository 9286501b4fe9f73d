"""Chat sessions, participants and messages."""

from memochat.session.models import (
    AuthorRole,
    ChatMessage,
    ChatMessageType,
    ChatParticipant,
    ChatSession,
    CitationSource,
)
from memochat.session.stores import (
    ChatMessageStore,
    ChatParticipantStore,
    ChatSessionStore,
    VolatileChatMessageStore,
    VolatileChatParticipantStore,
    VolatileChatSessionStore,
)

__all__ = [
    "AuthorRole",
    "ChatMessage",
    "ChatMessageStore",
    "ChatMessageType",
    "ChatParticipant",
    "ChatParticipantStore",
    "ChatSession",
    "ChatSessionStore",
    "CitationSource",
    "VolatileChatMessageStore",
    "VolatileChatParticipantStore",
    "VolatileChatSessionStore",
]
