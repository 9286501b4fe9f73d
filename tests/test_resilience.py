"""Tests for resilience: ResilienceConfig defaults, circuit breaker, timeout/retry kwargs."""

import asyncio
import time
from unittest.mock import MagicMock, patch

import pytest

from memochat.config.schema import ProviderConfig, ResilienceConfig
from memochat.providers.litellm_provider import LiteLLMProvider


def _completion(content="ok", total_tokens=9):
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = "stop"
    resp = MagicMock()
    resp.choices = [choice]
    resp.usage = {"prompt_tokens": 4, "completion_tokens": 5, "total_tokens": total_tokens}
    return resp


class TestResilienceConfigDefaults:
    def test_defaults(self):
        rc = ResilienceConfig()
        assert rc.timeout == 120
        assert rc.max_retries == 3
        assert rc.circuit_breaker_threshold == 5
        assert rc.circuit_breaker_cooldown == 60

    def test_provider_config_has_resilience(self):
        pc = ProviderConfig(api_key="test-key")
        assert isinstance(pc.resilience, ResilienceConfig)
        assert pc.resilience.max_retries == 3

    def test_camel_case_keys(self):
        rc = ResilienceConfig.model_validate({"circuitBreakerThreshold": 2, "maxRetries": 0})
        assert rc.circuit_breaker_threshold == 2
        assert rc.max_retries == 0


class TestCircuitBreaker:
    def _make_provider(self, threshold=3, cooldown=1):
        rc = ResilienceConfig(circuit_breaker_threshold=threshold, circuit_breaker_cooldown=cooldown)
        return LiteLLMProvider(api_key="fake", resilience_config=rc)

    def test_initially_closed(self):
        assert self._make_provider()._check_circuit_breaker() is None

    def test_opens_after_threshold(self):
        p = self._make_provider(threshold=3)
        for _ in range(3):
            p._record_result(False)
        err = p._check_circuit_breaker()
        assert err is not None
        assert "Circuit breaker open" in err

    def test_success_resets_counter(self):
        p = self._make_provider(threshold=3)
        p._record_result(False)
        p._record_result(False)
        p._record_result(True)
        assert p._consecutive_failures == 0
        assert p._check_circuit_breaker() is None

    def test_half_open_after_cooldown(self):
        p = self._make_provider(threshold=2, cooldown=0)
        p._record_result(False)
        p._record_result(False)
        time.sleep(0.01)
        assert p._check_circuit_breaker() is None

    def test_disabled_with_zero_threshold(self):
        p = LiteLLMProvider(api_key="fake", resilience_config=ResilienceConfig(circuit_breaker_threshold=0))
        for _ in range(10):
            p._record_result(False)
        assert p._check_circuit_breaker() is None

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits_chat_and_stream(self):
        p = self._make_provider(threshold=1, cooldown=60)
        p._record_result(False)

        with patch("memochat.providers.litellm_provider.acompletion") as acompletion:
            response = await p.chat(messages=[{"role": "user", "content": "hi"}])
            events = [e async for e in p.stream_chat(messages=[{"role": "user", "content": "hi"}])]

        acompletion.assert_not_called()
        assert response.is_error
        assert [e["type"] for e in events] == ["done"]
        assert events[0]["response"].is_error


class TestTimeoutRetryKwargs:
    @pytest.mark.asyncio
    async def test_acompletion_receives_timeout_and_retries(self):
        p = LiteLLMProvider(api_key="fake", resilience_config=ResilienceConfig(timeout=60, max_retries=2))
        captured_kwargs = {}

        async def fake_acompletion(**kwargs):
            captured_kwargs.update(kwargs)
            return _completion()

        with patch("memochat.providers.litellm_provider.acompletion", side_effect=fake_acompletion):
            response = await p.chat(messages=[{"role": "user", "content": "hi"}])

        assert captured_kwargs["request_timeout"] == 60
        assert captured_kwargs["num_retries"] == 2
        assert response.content == "ok"
        assert response.total_tokens == 9

    @pytest.mark.asyncio
    async def test_timeout_returns_error_response(self):
        p = LiteLLMProvider(api_key="fake", resilience_config=ResilienceConfig(timeout=1))

        async def slow_acompletion(**kwargs):
            await asyncio.sleep(999)

        with patch("memochat.providers.litellm_provider.acompletion", side_effect=slow_acompletion):
            with patch("memochat.providers.litellm_provider.asyncio.wait_for", side_effect=asyncio.TimeoutError):
                resp = await p.chat(messages=[{"role": "user", "content": "hi"}])

        assert resp.finish_reason == "error"
        assert "timed out" in resp.content

    @pytest.mark.asyncio
    async def test_timeouts_trip_the_circuit_breaker(self):
        p = LiteLLMProvider(api_key="fake", resilience_config=ResilienceConfig(timeout=1, circuit_breaker_threshold=2))

        with patch("memochat.providers.litellm_provider.acompletion", side_effect=asyncio.TimeoutError):
            with patch("memochat.providers.litellm_provider.asyncio.wait_for", side_effect=asyncio.TimeoutError):
                await p.chat(messages=[{"role": "user", "content": "hi"}])
                await p.chat(messages=[{"role": "user", "content": "hi"}])

        assert p._consecutive_failures == 2
        assert p._check_circuit_breaker() is not None

    @pytest.mark.asyncio
    async def test_no_resilience_config_skips_injection(self):
        p = LiteLLMProvider(api_key="fake", resilience_config=None)
        captured_kwargs = {}

        async def fake_acompletion(**kwargs):
            captured_kwargs.update(kwargs)
            return _completion()

        with patch("memochat.providers.litellm_provider.acompletion", side_effect=fake_acompletion):
            await p.chat(messages=[{"role": "user", "content": "hi"}])

        assert "request_timeout" not in captured_kwargs
        assert "num_retries" not in captured_kwargs
