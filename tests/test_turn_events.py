from memochat.agent.turn_events import (
    EVENT_BOT_RESPONSE,
    EVENT_BOT_STATUS,
    EVENT_RECEIVE_MESSAGE_UPDATE,
    STATE_STATUS_TEXT,
    TURN_EVENT_NAMESPACE,
    TURN_EVENT_SCHEMA_VERSION,
    bot_response_event,
    bot_status_event,
    message_event,
)


def test_bot_status_event_uses_state_text() -> None:
    event = bot_status_event("chat-1", "intent_extracted")

    assert event["type"] == EVENT_BOT_STATUS
    assert event["namespace"] == TURN_EVENT_NAMESPACE
    assert event["version"] == TURN_EVENT_SCHEMA_VERSION
    assert event["chat_id"] == "chat-1"
    assert event["state"] == "intent_extracted"
    assert event["status"] == "Extracting user intent"
    assert isinstance(event["timestamp_ms"], int)


def test_bot_status_event_accepts_custom_status() -> None:
    event = bot_status_event("chat-1", "finalized", "Generating semantic chat memory")
    assert event["status"] == "Generating semantic chat memory"


def test_every_turn_state_has_status_text() -> None:
    assert list(STATE_STATUS_TEXT) == [
        "init",
        "persona_rendered",
        "audience_extracted",
        "intent_extracted",
        "memories_retrieved",
        "history_filled",
        "streaming",
        "finalized",
    ]


def test_message_and_response_events() -> None:
    update = message_event(EVENT_RECEIVE_MESSAGE_UPDATE, "chat-1", "u1", {"content": "Hel"})
    assert update["type"] == EVENT_RECEIVE_MESSAGE_UPDATE
    assert update["user_id"] == "u1"
    assert update["message"] == {"content": "Hel"}

    usage = {"responseCompletion": 2}
    response = bot_response_event("chat-1", "Hello world", usage)
    usage["responseCompletion"] = 99
    assert response["type"] == EVENT_BOT_RESPONSE
    assert response["value"] == "Hello world"
    assert response["token_usage"] == {"responseCompletion": 2}
