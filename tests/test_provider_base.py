"""Tests for resumeai/providers/base.py: shared adapter behaviour and retry."""

from unittest.mock import AsyncMock, patch

import pytest

from resumeai.providers.base import (
    CompletionRequest,
    CompletionResponse,
    ModelConfig,
    ProviderName,
    RetryPolicy,
    TokenUsage,
)
from resumeai.providers.errors import (
    AIError,
    AuthenticationError,
    ConfigurationError,
    InitializationError,
    ProviderRateLimitError,
    RetryExhaustedError,
    ServerError,
    StreamingNotSupportedError,
)

from tests.conftest import FakeProvider


def _config(**overrides) -> ModelConfig:
    values = {"provider": ProviderName.GEMINI, "model_name": "gemini-2.0-flash-001", "api_key": "gm-test"}
    values.update(overrides)
    return ModelConfig(**values)


def _response(text: str = "ok") -> CompletionResponse:
    return CompletionResponse(text=text, usage=TokenUsage(), metadata={"provider": "gemini", "model": "m"})


class TestValueTypes:

    def test_model_config_rejects_bad_temperature(self):
        with pytest.raises(ValueError, match="temperature"):
            _config(temperature=1.5)

    def test_model_config_rejects_non_positive_max_tokens(self):
        with pytest.raises(ValueError, match="max_tokens"):
            _config(max_tokens=0)

    def test_model_config_hides_api_key_in_repr(self):
        assert "gm-test" not in repr(_config())

    def test_request_rejects_bad_temperature(self):
        with pytest.raises(ValueError):
            CompletionRequest(prompt="hi", temperature=-0.1)

    def test_cache_key_is_deterministic(self):
        a = CompletionRequest(prompt="hi", temperature=0.2, stop_sequences=["END"])
        b = CompletionRequest(prompt="hi", temperature=0.2, stop_sequences=("END",))
        assert a.cache_key() == b.cache_key()
        assert a.cache_key() != CompletionRequest(prompt="hi", temperature=0.3).cache_key()

    def test_response_to_dict_uses_camel_case_usage(self):
        response = CompletionResponse(
            text="hi", usage=TokenUsage(1, 2, 3), metadata={"provider": "openai", "model": "o3-mini"}
        )
        assert response.to_dict()["usage"] == {"promptTokens": 1, "completionTokens": 2, "totalTokens": 3}


class TestInitialize:

    async def test_empty_api_key_fails_fast(self):
        provider = FakeProvider()
        with pytest.raises(ConfigurationError) as exc_info:
            await provider.initialize(_config(api_key="  "))
        assert exc_info.value.code == "MISSING_API_KEY"

    async def test_use_before_initialize_raises(self):
        provider = FakeProvider()
        with pytest.raises(ConfigurationError) as exc_info:
            await provider.generate_completion(CompletionRequest(prompt="hi"))
        assert exc_info.value.code == "NOT_INITIALIZED"

    async def test_probe_runs_when_enabled(self):
        provider = FakeProvider()
        provider.probe_on_init = True
        provider._probe = AsyncMock()
        await provider.initialize(_config())
        provider._probe.assert_awaited_once()
        assert provider.config.model_name == "gemini-2.0-flash-001"

    async def test_probe_failure_leaves_provider_uninitialized(self):
        provider = FakeProvider()
        provider.probe_on_init = True
        provider._probe = AsyncMock(side_effect=InitializationError("bad key", provider="gemini"))
        with pytest.raises(InitializationError):
            await provider.initialize(_config())
        with pytest.raises(ConfigurationError):
            _ = provider.config

    async def test_validate_config_never_raises(self):
        provider = FakeProvider()
        provider._probe = AsyncMock(side_effect=RuntimeError("network down"))
        assert await provider.validate_config(_config()) is False
        assert await provider.validate_config(_config(api_key="")) is False


class TestOverrides:

    def test_request_overrides_apply_only_when_set(self):
        provider = FakeProvider()
        config = _config(temperature=0.7, max_tokens=1000)
        assert provider._temperature(CompletionRequest(prompt="x"), config) == 0.7
        assert provider._temperature(CompletionRequest(prompt="x", temperature=0.0), config) == 0.0
        assert provider._max_tokens(CompletionRequest(prompt="x", max_tokens=50), config) == 50


@patch("resumeai.providers.base.asyncio.sleep", new_callable=AsyncMock)
class TestRetry:

    async def _provider(self, policy: RetryPolicy | None = None) -> FakeProvider:
        provider = FakeProvider()
        if policy:
            provider.retry_policy = policy
        await provider.initialize(_config())
        return provider

    async def test_transient_error_is_retried(self, mock_sleep):
        provider = await self._provider()
        provider._complete = AsyncMock(side_effect=[ServerError("boom", provider="gemini"), _response("done")])

        result = await provider.generate_completion(CompletionRequest(prompt="hi"))
        assert result.text == "done"
        assert provider._complete.await_count == 2
        mock_sleep.assert_awaited_once_with(1.0)

    async def test_backoff_doubles_and_caps(self, mock_sleep):
        provider = await self._provider(RetryPolicy(max_attempts=5, initial_delay=4.0, max_delay=10.0))
        provider._complete = AsyncMock(side_effect=ProviderRateLimitError("slow down", provider="gemini"))

        with pytest.raises(RetryExhaustedError):
            await provider.generate_completion(CompletionRequest(prompt="hi"))
        assert [c.args[0] for c in mock_sleep.await_args_list] == [4.0, 8.0, 10.0, 10.0]

    async def test_exhaustion_reports_last_error(self, mock_sleep):
        provider = await self._provider()
        last = ServerError("still down", provider="gemini")
        provider._complete = AsyncMock(side_effect=[ServerError("down", provider="gemini"), last, last])

        with pytest.raises(RetryExhaustedError) as exc_info:
            await provider.generate_completion(CompletionRequest(prompt="hi"))
        assert exc_info.value.last_error is last
        assert exc_info.value.attempts == 3
        assert exc_info.value.details["last_code"] == "SERVER_ERROR"
        assert provider._complete.await_count == 3
        assert mock_sleep.await_count == 2

    async def test_non_retryable_error_is_not_retried(self, mock_sleep):
        provider = await self._provider()
        provider._complete = AsyncMock(side_effect=AuthenticationError("bad key", provider="gemini"))

        with pytest.raises(AuthenticationError):
            await provider.generate_completion(CompletionRequest(prompt="hi"))
        assert provider._complete.await_count == 1
        mock_sleep.assert_not_awaited()

    async def test_unexpected_exception_becomes_ai_error(self, mock_sleep):
        provider = await self._provider()
        provider._complete = AsyncMock(side_effect=KeyError("choices"))

        with pytest.raises(AIError) as exc_info:
            await provider.generate_completion(CompletionRequest(prompt="hi"))
        assert exc_info.value.code == "COMPLETION_ERROR"
        mock_sleep.assert_not_awaited()


class TestStreaming:

    async def test_default_stream_not_supported(self):
        from resumeai.providers.base import LLMProvider

        class NoStream(FakeProvider):
            _stream = LLMProvider._stream

        provider = NoStream()
        await provider.initialize(_config())
        assert provider.supports_streaming is False
        with pytest.raises(StreamingNotSupportedError):
            async for _ in provider.generate_streaming_completion(CompletionRequest(prompt="hi")):
                pass

    async def test_stream_ends_with_completion_marker(self):
        provider = FakeProvider(stream_texts=["a", "b"])
        await provider.initialize(_config())
        chunks = [c async for c in provider.generate_streaming_completion(CompletionRequest(prompt="hi"))]
        assert [c.text for c in chunks] == ["a", "b", ""]
        assert [c.is_complete for c in chunks] == [False, False, True]
