"""Typed event payloads broadcast to chat subscribers while a turn runs."""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Literal, TypeAlias, TypedDict

TURN_EVENT_NAMESPACE = "memochat.turn"
TURN_EVENT_SCHEMA_VERSION = 1

EVENT_BOT_STATUS = "bot_status"
EVENT_RECEIVE_MESSAGE = "receive_message"
EVENT_RECEIVE_MESSAGE_UPDATE = "receive_message_update"
EVENT_BOT_RESPONSE = "bot_response"

TurnEventType: TypeAlias = Literal[
    "bot_status",
    "receive_message",
    "receive_message_update",
    "bot_response",
]

TurnState: TypeAlias = Literal[
    "init",
    "persona_rendered",
    "audience_extracted",
    "intent_extracted",
    "memories_retrieved",
    "history_filled",
    "streaming",
    "finalized",
]

# Human-readable status shown to chat subscribers on entering each state.
STATE_STATUS_TEXT: dict[str, str] = {
    "init": "Saving user message to chat history",
    "persona_rendered": "Initializing prompt",
    "audience_extracted": "Extracting audience",
    "intent_extracted": "Extracting user intent",
    "memories_retrieved": "Extracting semantic and document memories",
    "history_filled": "Extracting chat history",
    "streaming": "Generating bot response",
    "finalized": "Saving message to chat history",
}
STATUS_EXTRACTING_MEMORY = "Generating semantic chat memory"


class BaseTurnEvent(TypedDict):
    namespace: str
    version: int
    type: TurnEventType
    chat_id: str
    timestamp_ms: int


class BotStatusEvent(BaseTurnEvent):
    type: Literal["bot_status"]
    state: str
    status: str


class MessageEvent(BaseTurnEvent):
    type: Literal["receive_message", "receive_message_update"]
    user_id: str
    message: dict[str, Any]


class BotResponseEvent(BaseTurnEvent):
    type: Literal["bot_response"]
    value: str
    token_usage: dict[str, int]


TurnEventPayload: TypeAlias = BotStatusEvent | MessageEvent | BotResponseEvent
TurnEventCallback: TypeAlias = Callable[[TurnEventPayload], Awaitable[None]]


def _base(event_type: str, chat_id: str) -> dict[str, Any]:
    return {
        "namespace": TURN_EVENT_NAMESPACE,
        "version": TURN_EVENT_SCHEMA_VERSION,
        "type": event_type,
        "chat_id": chat_id,
        "timestamp_ms": int(time.time() * 1000),
    }


def bot_status_event(chat_id: str, state: str, status: str | None = None) -> BotStatusEvent:
    return {  # type: ignore[return-value]
        **_base(EVENT_BOT_STATUS, chat_id),
        "state": state,
        "status": status or STATE_STATUS_TEXT.get(state, state),
    }


def message_event(event_type: str, chat_id: str, user_id: str, message: dict[str, Any]) -> MessageEvent:
    return {  # type: ignore[return-value]
        **_base(event_type, chat_id),
        "user_id": user_id,
        "message": message,
    }


def bot_response_event(chat_id: str, value: str, token_usage: dict[str, int]) -> BotResponseEvent:
    return {  # type: ignore[return-value]
        **_base(EVENT_BOT_RESPONSE, chat_id),
        "value": value,
        "token_usage": dict(token_usage),
    }
