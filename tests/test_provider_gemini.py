"""Tests for resumeai/providers/gemini.py: Gemini provider."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import httpx

from resumeai.providers.base import CompletionRequest, ModelConfig, ProviderName, RetryPolicy
from resumeai.providers.errors import (
    AuthenticationError,
    EmptyResponseError,
    InitializationError,
    ProviderRateLimitError,
    RetryExhaustedError,
    ServerError,
)
from resumeai.providers.gemini import SAFETY_SETTINGS, GeminiProvider

GENERATE_RESPONSE = {
    "candidates": [{
        "content": {"parts": [{"text": "Hello"}, {"text": " there"}], "role": "model"},
        "finishReason": "STOP",
    }],
    "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2, "totalTokenCount": 6},
}


@pytest.fixture
def config():
    return ModelConfig(provider=ProviderName.GEMINI, model_name="gemini-2.0-flash-001", api_key="gm-test")


@pytest.fixture
async def provider(config):
    provider = GeminiProvider(retry_policy=RetryPolicy(max_attempts=1), probe_on_init=False)
    await provider.initialize(config)
    return provider


def _response(status_code: int, body: dict | None = None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {}
    response.text = json.dumps(body or {})
    return response


def _mock_client(provider, **methods):
    mock_client = AsyncMock()
    mock_client.is_closed = False
    for name, value in methods.items():
        setattr(mock_client, name, value)
    provider._client = mock_client
    return mock_client


class TestGeminiCompletion:

    async def test_completion_success(self, provider):
        mock_client = _mock_client(provider, post=AsyncMock(return_value=_response(200, GENERATE_RESPONSE)))

        result = await provider.generate_completion(CompletionRequest(prompt="Hi"))

        assert result.text == "Hello there"
        assert (result.usage.prompt_tokens, result.usage.completion_tokens, result.usage.total_tokens) == (4, 2, 6)
        assert result.metadata["finish_reason"] == "STOP"

        call_kwargs = mock_client.post.call_args
        assert call_kwargs.args[0] == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash-001:generateContent"
        )
        assert call_kwargs.kwargs["headers"]["x-goog-api-key"] == "gm-test"

    async def test_request_body(self, provider):
        mock_client = _mock_client(provider, post=AsyncMock(return_value=_response(200, GENERATE_RESPONSE)))

        await provider.generate_completion(
            CompletionRequest(prompt="Hi", temperature=0.2, max_tokens=64, stop_sequences=("###",))
        )
        body = mock_client.post.call_args.kwargs["json"]
        assert body["contents"] == [{"role": "user", "parts": [{"text": "Hi"}]}]
        assert body["generationConfig"] == {
            "maxOutputTokens": 64,
            "temperature": 0.2,
            "topK": 40,
            "topP": 0.95,
            "stopSequences": ["###"],
        }
        assert body["safetySettings"] == SAFETY_SETTINGS

    async def test_no_candidates_is_empty_response(self, provider):
        _mock_client(provider, post=AsyncMock(return_value=_response(200, {"candidates": []})))
        with pytest.raises(EmptyResponseError):
            await provider.generate_completion(CompletionRequest(prompt="Hi"))

    async def test_invalid_key_maps_to_authentication_error(self, provider):
        body = {"error": {
            "code": 400,
            "message": "API key not valid.",
            "status": "INVALID_ARGUMENT",
            "details": [{"reason": "API_KEY_INVALID"}],
        }}
        _mock_client(provider, post=AsyncMock(return_value=_response(400, body)))
        with pytest.raises(AuthenticationError, match="API key not valid"):
            await provider.generate_completion(CompletionRequest(prompt="Hi"))

    async def test_resource_exhausted_is_rate_limit(self, provider):
        body = {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        _mock_client(provider, post=AsyncMock(return_value=_response(429, body)))
        with pytest.raises(RetryExhaustedError) as exc_info:
            await provider.generate_completion(CompletionRequest(prompt="Hi"))
        assert isinstance(exc_info.value.last_error, ProviderRateLimitError)

    async def test_server_error(self, provider):
        _mock_client(provider, post=AsyncMock(return_value=_response(500, {"error": {"message": "internal"}})))
        with pytest.raises(RetryExhaustedError) as exc_info:
            await provider.generate_completion(CompletionRequest(prompt="Hi"))
        assert isinstance(exc_info.value.last_error, ServerError)


class TestGeminiProbe:

    async def test_probe_lists_models(self, config):
        provider = GeminiProvider()
        mock_client = _mock_client(provider, get=AsyncMock(return_value=_response(200, {"models": []})))

        await provider.initialize(config)
        call_kwargs = mock_client.get.call_args
        assert call_kwargs.args[0] == "https://generativelanguage.googleapis.com/v1beta/models"
        assert call_kwargs.kwargs["params"] == {"pageSize": 1}

    async def test_probe_network_failure(self, config):
        provider = GeminiProvider()
        _mock_client(provider, get=AsyncMock(side_effect=httpx.ConnectError("refused")))

        with pytest.raises(InitializationError):
            await provider.initialize(config)


class TestGeminiStreaming:

    async def test_stream_yields_text_then_marker(self, provider):
        sse_lines = [
            'data: {"candidates":[{"content":{"parts":[{"text":"Hel"}]}}]}',
            "",
            'data: {"candidates":[{"content":{"parts":[{"text":"lo"}]}}]}',
            "",
        ]
        mock_response = AsyncMock()
        mock_response.status_code = 200
        mock_response.aiter_lines = MagicMock(return_value=_async_iter(sse_lines))
        mock_response.__aenter__ = AsyncMock(return_value=mock_response)
        mock_response.__aexit__ = AsyncMock(return_value=False)
        mock_client = _mock_client(provider, stream=MagicMock(return_value=mock_response))

        chunks = [c async for c in provider.generate_streaming_completion(CompletionRequest(prompt="Hi"))]

        assert [c.text for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1].is_complete
        call_kwargs = mock_client.stream.call_args
        assert call_kwargs.args[1].endswith(":streamGenerateContent")
        assert call_kwargs.kwargs["params"] == {"alt": "sse"}


async def _async_iter(items):
    for item in items:
        yield item
