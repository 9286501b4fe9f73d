"""File-backed chat persistence.

Each chat lives in one JSONL file: a metadata line carrying the session and
its participants, followed by one line per message in insertion order.
Every write rewrites the file atomically, so a reader (or a crash) never
observes a half-written chat.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from memochat.logging import get_logger
from memochat.session.models import ChatMessage, ChatParticipant, ChatSession
from memochat.session.stores import newest_first
from memochat.utils.helpers import atomic_write_text, ensure_dir, safe_filename

logger = get_logger(__name__)


@dataclass
class _ChatFile:
    session: ChatSession | None = None
    participants: list[ChatParticipant] = field(default_factory=list)
    messages: dict[str, ChatMessage] = field(default_factory=dict)


class FileChatContext:
    """Shared on-disk state behind the three file-backed stores."""

    def __init__(self, directory: Path):
        self.directory = ensure_dir(Path(directory).expanduser())
        self._cache: dict[str, _ChatFile] = {}
        self._message_index: dict[str, str] = {}

    def path_for(self, chat_id: str) -> Path:
        return self.directory / f"{safe_filename(chat_id)}.jsonl"

    def load(self, chat_id: str) -> _ChatFile:
        cached = self._cache.get(chat_id)
        if cached is not None:
            return cached

        chat = _ChatFile()
        path = self.path_for(chat_id)
        if path.exists():
            # An unreadable file raises before anything is cached, so a later
            # write can never replace it with an empty chat.
            with open(path, encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        self._apply_line(chat, json.loads(line))
                    except (ValueError, KeyError, TypeError, AttributeError) as e:
                        logger.warning(
                            "chat_file_line_skipped",
                            chat_id=chat_id,
                            path=str(path),
                            line=line_number,
                            error=str(e),
                        )

        for message_id in chat.messages:
            self._message_index[message_id] = chat_id
        self._cache[chat_id] = chat
        return chat

    @staticmethod
    def _apply_line(chat: _ChatFile, data: dict[str, Any]) -> None:
        if data.get("_type") == "metadata":
            if data.get("session"):
                chat.session = ChatSession.from_dict(data["session"])
            chat.participants = [ChatParticipant.from_dict(p) for p in data.get("participants") or []]
        else:
            message = ChatMessage.from_dict(data)
            chat.messages[message.id] = message

    def chat_for_message(self, message_id: str) -> str | None:
        if message_id not in self._message_index:
            # Chat ids are UUIDs, so the file stem is the chat id.
            for path in sorted(self.directory.glob("*.jsonl")):
                if path.stem not in self._cache:
                    self.load(path.stem)
        return self._message_index.get(message_id)

    def index_message(self, message_id: str, chat_id: str) -> None:
        self._message_index[message_id] = chat_id

    def write(self, chat_id: str) -> None:
        chat = self.load(chat_id)
        started = time.perf_counter()
        metadata: dict[str, Any] = {
            "_type": "metadata",
            "chat_id": chat_id,
            "session": chat.session.to_dict() if chat.session else None,
            "participants": [p.to_dict() for p in chat.participants],
        }
        lines = [json.dumps(metadata, ensure_ascii=False)]
        lines.extend(json.dumps(m.to_dict(), ensure_ascii=False) for m in chat.messages.values())
        atomic_write_text(self.path_for(chat_id), "\n".join(lines) + "\n")
        logger.debug(
            "chat_file_written",
            chat_id=chat_id,
            message_count=len(chat.messages),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
        )


def _clone_session(session: ChatSession) -> ChatSession:
    return ChatSession.from_dict(session.to_dict())


def _clone_message(message: ChatMessage) -> ChatMessage:
    return ChatMessage.from_dict(message.to_dict())


class FileChatSessionStore:
    def __init__(self, context: FileChatContext):
        self._ctx = context

    async def find_by_id(self, chat_id: str) -> ChatSession | None:
        session = self._ctx.load(chat_id).session
        return _clone_session(session) if session else None

    async def create(self, session: ChatSession) -> None:
        chat = self._ctx.load(session.id)
        if chat.session is not None:
            raise ValueError(f"Chat session {session.id} already exists")
        chat.session = _clone_session(session)
        self._ctx.write(session.id)

    async def upsert(self, session: ChatSession) -> None:
        self._ctx.load(session.id).session = _clone_session(session)
        self._ctx.write(session.id)


class FileChatParticipantStore:
    def __init__(self, context: FileChatContext):
        self._ctx = context

    async def create(self, participant: ChatParticipant) -> None:
        self._ctx.load(participant.chat_id).participants.append(ChatParticipant.from_dict(participant.to_dict()))
        self._ctx.write(participant.chat_id)

    async def find_by_chat_id(self, chat_id: str) -> list[ChatParticipant]:
        return [ChatParticipant.from_dict(p.to_dict()) for p in self._ctx.load(chat_id).participants]

    async def is_user_in_chat(self, user_id: str, chat_id: str) -> bool:
        return any(p.user_id == user_id for p in self._ctx.load(chat_id).participants)


class FileChatMessageStore:
    def __init__(self, context: FileChatContext):
        self._ctx = context

    async def create(self, message: ChatMessage) -> None:
        if message.id in self._ctx.load(message.chat_id).messages:
            raise ValueError(f"Chat message {message.id} already exists")
        await self.upsert(message)

    async def upsert(self, message: ChatMessage) -> None:
        self._ctx.load(message.chat_id).messages[message.id] = _clone_message(message)
        self._ctx.index_message(message.id, message.chat_id)
        self._ctx.write(message.chat_id)

    async def find_by_id(self, message_id: str) -> ChatMessage | None:
        chat_id = self._ctx.chat_for_message(message_id)
        if chat_id is None:
            return None
        message = self._ctx.load(chat_id).messages.get(message_id)
        return _clone_message(message) if message else None

    async def find_by_chat_id(self, chat_id: str, skip: int = 0, count: int = -1) -> list[ChatMessage]:
        messages = list(self._ctx.load(chat_id).messages.values())
        return [_clone_message(m) for m in newest_first(messages, skip, count)]


def open_file_stores(directory: Path) -> tuple[FileChatSessionStore, FileChatParticipantStore, FileChatMessageStore]:
    context = FileChatContext(directory)
    return FileChatSessionStore(context), FileChatParticipantStore(context), FileChatMessageStore(context)
