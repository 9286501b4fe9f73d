"""Exception taxonomy for chat turns.

Only the errors below abort a turn. Everything else (a failed extraction
call, one unreachable memory container, a malformed memory JSON payload) is
logged where it happens and replaced with an empty result.
"""

from __future__ import annotations


class MemochatError(Exception):
    """Base class for all memochat errors."""


class ChatSessionNotFoundError(MemochatError):
    def __init__(self, chat_id: str):
        super().__init__(f"Chat session {chat_id} not found")
        self.chat_id = chat_id


class ParticipantNotInChatError(MemochatError):
    def __init__(self, user_id: str, chat_id: str):
        super().__init__(f"User {user_id} is not a participant of chat {chat_id}")
        self.user_id = user_id
        self.chat_id = chat_id


class InvalidMemoryBalanceError(MemochatError):
    def __init__(self, balance: float):
        super().__init__(f"Invalid memory balance {balance}: must be within [0, 1]")
        self.balance = balance


class UnknownMemoryContainerError(MemochatError):
    def __init__(self, name: str):
        super().__init__(f"Unknown memory container: {name}")
        self.name = name


class ResponseCompletionError(MemochatError):
    """The streamed response completion failed."""


class TurnTimeoutError(MemochatError):
    """The turn did not finish within the configured time limit."""


class ConfigError(MemochatError):
    """The configuration file could not be parsed or failed validation."""
