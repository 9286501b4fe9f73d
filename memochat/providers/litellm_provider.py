"""LiteLLM provider implementation for multi-provider support."""

import asyncio
import logging
import time
from typing import Any, AsyncIterator

import litellm
from litellm import acompletion

from memochat.logging import get_logger, mask_secret
from memochat.providers.base import CompletionSettings, LLMProvider, LLMResponse

logger = get_logger("memochat.providers.litellm")


# Standard OpenAI chat-completion message keys; anything else is stripped before the request.
_ALLOWED_MSG_KEYS = frozenset({"role", "content", "name"})


class LiteLLMProvider(LLMProvider):
    """
    Completion provider backed by LiteLLM.

    Any model string LiteLLM understands works here (``gpt-4o-mini``,
    ``azure/<deployment>``, ``anthropic/claude-...``, ``ollama/llama3``).
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
        resilience_config: Any | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}

        # Resilience: timeout / retry / circuit-breaker
        self._resilience = resilience_config  # ResilienceConfig or None
        self._consecutive_failures: int = 0
        self._circuit_open_until: float = 0.0

        if api_key:
            logger.info("provider_initialized", model=default_model, api_key=mask_secret(api_key))

        litellm.suppress_debug_info = True
        # Drop sampling parameters the target model does not accept
        litellm.drop_params = True

    @staticmethod
    def _sanitize_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Strip non-standard keys and replace empty content with a single space."""
        sanitized = []
        for msg in messages:
            clean = {k: v for k, v in msg.items() if k in _ALLOWED_MSG_KEYS}
            if not clean.get("content"):
                clean["content"] = " "
            sanitized.append(clean)
        return sanitized

    @staticmethod
    def _value(obj: Any, key: str, default: Any = None) -> Any:
        if isinstance(obj, dict):
            return obj.get(key, default)
        return getattr(obj, key, default)

    @classmethod
    def _extract_delta_text(cls, delta: Any) -> str:
        content = cls._value(delta, "content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                text = cls._value(item, "text")
                if isinstance(text, str) and text:
                    parts.append(text)
            return "".join(parts)
        return ""

    @classmethod
    def _usage_dict(cls, usage: Any) -> dict[str, int]:
        return {
            "prompt_tokens": int(cls._value(usage, "prompt_tokens", 0) or 0),
            "completion_tokens": int(cls._value(usage, "completion_tokens", 0) or 0),
            "total_tokens": int(cls._value(usage, "total_tokens", 0) or 0),
        }

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None,
        model: str | None,
        *,
        streaming: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": self._sanitize_messages(messages),
            **(settings or CompletionSettings()).as_kwargs(),
        }
        if streaming:
            kwargs["stream"] = True
            kwargs["stream_options"] = {"include_usage": True}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        if logging.getLogger("memochat").isEnabledFor(logging.DEBUG):
            logger.debug(
                "litellm_request",
                model=kwargs["model"],
                message_count=len(kwargs["messages"]),
                max_tokens=kwargs["max_tokens"],
                streaming=streaming,
            )
        return kwargs

    def _mask_error(self, error: Exception) -> str:
        error_msg = str(error)
        if self.api_key and self.api_key in error_msg:
            error_msg = error_msg.replace(self.api_key, mask_secret(self.api_key))
        return error_msg

    def _check_circuit_breaker(self) -> str | None:
        """Return an error message if the circuit is open, else None."""
        rc = self._resilience
        if not rc or rc.circuit_breaker_threshold <= 0:
            return None
        if self._consecutive_failures < rc.circuit_breaker_threshold:
            return None
        now = time.monotonic()
        if now < self._circuit_open_until:
            return (
                f"Circuit breaker open: {self._consecutive_failures} consecutive failures. "
                f"Retry after {int(self._circuit_open_until - now)}s cooldown."
            )
        # Cooldown expired: half-open, allow one probe
        return None

    def _record_result(self, success: bool) -> None:
        """Update circuit-breaker counters after a call."""
        rc = self._resilience
        if not rc or rc.circuit_breaker_threshold <= 0:
            return
        if success:
            self._consecutive_failures = 0
            self._circuit_open_until = 0.0
        else:
            self._consecutive_failures += 1
            if self._consecutive_failures >= rc.circuit_breaker_threshold:
                self._circuit_open_until = time.monotonic() + rc.circuit_breaker_cooldown
                logger.warning(
                    "circuit_breaker_opened",
                    failures=self._consecutive_failures,
                    cooldown=rc.circuit_breaker_cooldown,
                )

    async def _open(self, kwargs: dict[str, Any]) -> Any:
        rc = self._resilience
        if rc:
            kwargs["request_timeout"] = rc.timeout
            kwargs["num_retries"] = rc.max_retries

        safety_timeout = (rc.timeout + 30) if rc else None
        coro = acompletion(**kwargs)
        if safety_timeout:
            return await asyncio.wait_for(coro, timeout=safety_timeout)
        return await coro

    async def chat(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            settings: Sampling parameters; defaults when omitted.
            model: Model identifier; the provider default when omitted.

        Returns:
            LLMResponse with the generated text, or an error response.
        """
        kwargs = self._build_kwargs(messages, settings, model, streaming=False)

        cb_error = self._check_circuit_breaker()
        if cb_error:
            return LLMResponse(content=f"Error calling LLM: {cb_error}", finish_reason="error")

        try:
            response = await self._open(kwargs)
            self._record_result(True)
            return self._parse_response(response)
        except asyncio.TimeoutError:
            self._record_result(False)
            logger.error("llm_call_timeout", model=kwargs["model"])
            return LLMResponse(content="Error calling LLM: request timed out", finish_reason="error")
        except Exception as e:
            self._record_result(False)
            error_msg = self._mask_error(e)
            logger.error("llm_call_failed", model=kwargs["model"], error=error_msg)
            return LLMResponse(content=f"Error calling LLM: {error_msg}", finish_reason="error")

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        settings: CompletionSettings | None = None,
        model: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream chat completion as provider-agnostic events."""
        kwargs = self._build_kwargs(messages, settings, model, streaming=True)

        content_parts: list[str] = []
        final_finish_reason = "stop"
        final_usage: dict[str, int] = {}

        cb_error = self._check_circuit_breaker()
        if cb_error:
            yield {
                "type": "done",
                "response": LLMResponse(content=f"Error calling LLM: {cb_error}", finish_reason="error"),
            }
            return

        try:
            stream = await self._open(kwargs)

            async for chunk in stream:
                usage = self._value(chunk, "usage")
                if usage is not None:
                    final_usage = self._usage_dict(usage)

                choices = self._value(chunk, "choices") or []
                if not choices:
                    continue
                choice = choices[0]
                finish_reason = self._value(choice, "finish_reason")
                if isinstance(finish_reason, str) and finish_reason:
                    final_finish_reason = finish_reason

                text = self._extract_delta_text(self._value(choice, "delta") or {})
                if text:
                    content_parts.append(text)
                    yield {"type": "text_delta", "delta": text}
        except asyncio.TimeoutError:
            self._record_result(False)
            logger.error("llm_stream_timeout", model=kwargs["model"])
            yield {
                "type": "done",
                "response": LLMResponse(content="Error calling LLM: request timed out", finish_reason="error"),
            }
            return
        except Exception as e:
            self._record_result(False)
            error_msg = self._mask_error(e)
            logger.error("llm_stream_failed", model=kwargs["model"], error=error_msg)
            yield {
                "type": "done",
                "response": LLMResponse(content=f"Error calling LLM: {error_msg}", finish_reason="error"),
            }
            return

        self._record_result(True)
        yield {
            "type": "done",
            "response": LLMResponse(
                content="".join(content_parts) or None,
                finish_reason=final_finish_reason or "stop",
                usage=final_usage,
            ),
        }

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = self._usage_dict(response.usage)
        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.default_model
