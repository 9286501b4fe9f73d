"""Structured logging for memochat, built on structlog.

Every turn binds ``chat_id`` and ``user_id`` into structlog's contextvars, so
log lines from extraction, retrieval and streaming can be joined per turn.
Provider errors sometimes echo request headers back, so all string values
(including those nested in dicts and lists) pass through secret redaction
before rendering.
"""

import json
import logging
import re
import sys
from typing import Any

import structlog

_SECRET_PATTERNS = [
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),                          # OpenAI style keys
    re.compile(r"Bearer\s+[A-Za-z0-9_\-.]{10,}"),                  # Authorization headers
    re.compile(r"AIza[A-Za-z0-9_-]{10,}"),                         # Google API keys
    re.compile(r"ghp_[A-Za-z0-9]{10,}"),                           # GitHub PAT
    re.compile(r"api-key[=:]\s*[A-Za-z0-9]{16,}", re.IGNORECASE),  # Azure OpenAI header dumps
]

_LOGGER_ROOT = "memochat"


def mask_secret(value: str) -> str:
    """Mask a secret value, keeping first 4 and last 4 chars visible.

    >>> mask_secret("sk-abc123456789xyz")
    'sk-a****9xyz'
    """
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def _redact_value(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(lambda m: mask_secret(m.group(0)), value)
    return value


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_value(value)
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def _redact_event(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that redacts secrets from every value."""
    return {key: _redact(val) for key, val in event_dict.items()}


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Route the ``memochat`` logger hierarchy through structlog.

    Args:
        json_output: Emit JSON lines; otherwise use the console renderer.
        level: Log level for the ``memochat`` hierarchy.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        _redact_event,
    ]
    if json_output:
        renderer = structlog.processors.JSONRenderer(
            serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, default=str, **kw)
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger(_LOGGER_ROOT)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))


def get_logger(name: str = _LOGGER_ROOT) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_turn_context(chat_id: str, user_id: str) -> None:
    """Tag every log line of the current task with the turn's chat and user."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(chat_id=chat_id, user_id=user_id)


def clear_turn_context() -> None:
    structlog.contextvars.clear_contextvars()
