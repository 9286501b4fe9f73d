"""Chat session, participant and message records."""

from __future__ import annotations

import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

CURRENT_SESSION_VERSION = "2.0"

_LEGACY_PLUGIN_RE = re.compile("timeskill", re.IGNORECASE)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class AuthorRole(str, Enum):
    USER = "user"
    BOT = "bot"


class ChatMessageType(str, Enum):
    MESSAGE = "message"
    PLAN = "plan"
    DOCUMENT = "document"

    @classmethod
    def parse(cls, value: str | None) -> "ChatMessageType":
        """Parse a message type name case-insensitively; unknown names fall back to ``MESSAGE``."""
        if isinstance(value, ChatMessageType):
            return value
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.MESSAGE


@dataclass
class CitationSource:
    """A document snippet the bot response may quote."""

    link: str
    source_name: str = ""
    source_content_type: str = ""
    snippet: str = ""
    relevance_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CitationSource":
        return cls(
            link=data.get("link", ""),
            source_name=data.get("source_name", ""),
            source_content_type=data.get("source_content_type", ""),
            snippet=data.get("snippet", ""),
            relevance_score=float(data.get("relevance_score", 0.0)),
        )


@dataclass
class ChatSession:
    title: str
    system_description: str
    id: str = field(default_factory=_new_id)
    memory_balance: float = 0.5
    created_on: datetime = field(default_factory=_now)
    enabled_plugins: set[str] = field(default_factory=set)
    version: str | None = CURRENT_SESSION_VERSION

    @property
    def safe_system_description(self) -> str:
        """System description with legacy plugin names rewritten."""
        return _LEGACY_PLUGIN_RE.sub("TimePlugin", self.system_description)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "system_description": self.system_description,
            "memory_balance": self.memory_balance,
            "created_on": self.created_on.isoformat(),
            "enabled_plugins": sorted(self.enabled_plugins),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatSession":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            system_description=data.get("system_description", ""),
            memory_balance=float(data.get("memory_balance", 0.5)),
            created_on=datetime.fromisoformat(data["created_on"]) if data.get("created_on") else _now(),
            enabled_plugins=set(data.get("enabled_plugins") or []),
            version=data.get("version"),
        )


@dataclass
class ChatParticipant:
    user_id: str
    chat_id: str
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatParticipant":
        return cls(id=data["id"], user_id=data["user_id"], chat_id=data["chat_id"])


@dataclass
class ChatMessage:
    """
    One message in a chat.

    Bot messages are created empty when streaming starts; ``content`` only
    grows until the message is finalized with its token usage.
    """

    chat_id: str
    user_id: str
    user_name: str
    content: str
    author_role: AuthorRole = AuthorRole.USER
    type: ChatMessageType = ChatMessageType.MESSAGE
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)
    prompt: str = ""
    citations: list[CitationSource] = field(default_factory=list)
    token_usage: dict[str, int] | None = None

    @classmethod
    def create_bot_response(
        cls,
        chat_id: str,
        content: str,
        prompt: str,
        citations: list[CitationSource] | None = None,
        token_usage: dict[str, int] | None = None,
    ) -> "ChatMessage":
        return cls(
            chat_id=chat_id,
            user_id="bot",
            user_name="bot",
            content=content,
            author_role=AuthorRole.BOT,
            prompt=prompt,
            citations=list(citations or []),
            token_usage=token_usage,
        )

    @property
    def formatted_timestamp(self) -> str:
        return self.timestamp.strftime("%Y-%m-%d %H:%M:%S")

    def to_formatted_string(self) -> str:
        return f"[{self.formatted_timestamp}] {self.user_name}: {self.content}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "content": self.content,
            "author_role": self.author_role.value,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "prompt": self.prompt,
            "citations": [c.to_dict() for c in self.citations],
            "token_usage": self.token_usage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            id=data["id"],
            chat_id=data["chat_id"],
            user_id=data.get("user_id", ""),
            user_name=data.get("user_name", ""),
            content=data.get("content", ""),
            author_role=AuthorRole(data.get("author_role", AuthorRole.USER.value)),
            type=ChatMessageType.parse(data.get("type")),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else _now(),
            prompt=data.get("prompt", ""),
            citations=[CitationSource.from_dict(c) for c in data.get("citations") or []],
            token_usage=data.get("token_usage"),
        )
