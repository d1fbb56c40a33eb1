"""Integration tests for SSE streaming on /api/ai/completions."""

import asyncio
import json

import pytest
import httpx

from resumeai.main import app
from resumeai.providers.base import StreamChunk
from resumeai.providers.errors import ServerOverloadedError

from tests.conftest import make_stream_chunks

ALICE = {"Authorization": "Bearer token-alice"}
STREAM_BODY = {"prompt": "Write a haiku", "options": {"stream": True}}


@pytest.fixture
async def app_client(services):
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.state.services = None


def _use_chunks(fake_provider, chunks: list[StreamChunk]):
    async def stream(request, config):
        for chunk in chunks:
            yield chunk
    fake_provider._stream = stream


def _events(body: str) -> list[str]:
    return [line[len("data: "):] for line in body.split("\n\n") if line.startswith("data: ")]


async def _usage(services, user_id: str = "alice") -> int:
    services.user_settings.invalidate(user_id)
    return (await services.user_settings.get_user_settings(user_id)).usage.ai_requests


class TestStreamingSSEFormat:

    async def test_stream_returns_sse_events(self, app_client, fake_provider):
        """Each chunk is one 'data: ...' event; the stream ends with [DONE]."""
        _use_chunks(fake_provider, make_stream_chunks("Hello world"))
        resp = await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["Cache-Control"] == "no-cache"
        assert "X-RateLimit-Limit" in resp.headers
        assert "X-Request-Id" in resp.headers

        events = _events(resp.text)
        assert events[-1] == "[DONE]"
        text = "".join(json.loads(e)["text"] for e in events[:-1])
        assert text == "Hello world"

    async def test_request_marked_as_stream(self, app_client, fake_provider):
        recorded = []

        async def stream(request, config):
            recorded.append(request)
            yield StreamChunk(text="", is_complete=True)

        fake_provider._stream = stream
        await app_client.post(
            "/api/ai/completions",
            json={"prompt": "hi", "options": {"stream": True, "stopSequences": ["END"]}},
            headers=ALICE,
        )
        assert recorded[0].stream is True
        assert recorded[0].stop_sequences == ("END",)


class TestStreamingUsage:

    async def test_usage_counted_once_after_completion(self, app_client, services, fake_provider):
        _use_chunks(fake_provider, make_stream_chunks("Hello world"))
        await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)
        assert await _usage(services) == 1

    async def test_incomplete_stream_not_counted(self, app_client, services, fake_provider):
        _use_chunks(fake_provider, make_stream_chunks("Hello")[:-1])
        resp = await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)
        assert "[DONE]" not in _events(resp.text)
        assert await _usage(services) == 0


class TestStreamingErrors:

    async def test_vendor_error_becomes_error_event(self, app_client, services, fake_provider):
        async def stream(request, config):
            yield StreamChunk(text="partial", is_complete=False)
            raise ServerOverloadedError("overloaded", provider="gemini")

        fake_provider._stream = stream
        resp = await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)

        assert resp.status_code == 200
        events = _events(resp.text)
        assert json.loads(events[0]) == {"text": "partial"}
        assert json.loads(events[-1]) == {"error": "overloaded", "code": "SERVER_OVERLOADED"}
        assert await _usage(services) == 0

    async def test_idle_timeout_becomes_error_event(self, app_client, services, fake_provider):
        async def stream(request, config):
            yield StreamChunk(text="partial", is_complete=False)
            await asyncio.sleep(5)
            yield StreamChunk(text="", is_complete=True)

        fake_provider._stream = stream
        services.ai.stream_idle_timeout = 0.05
        resp = await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)

        assert json.loads(_events(resp.text)[-1])["code"] == "STREAM_TIMEOUT"

    async def test_unexpected_error_is_wrapped(self, app_client, fake_provider):
        async def stream(request, config):
            raise RuntimeError("socket exploded")
            yield  # pragma: no cover

        fake_provider._stream = stream
        resp = await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)

        assert json.loads(_events(resp.text)[-1])["code"] == "STREAMING_ERROR"

    async def test_rate_limit_checked_before_streaming(self, app_client, services, fake_provider):
        services.settings.completion_rate_limit = 1
        _use_chunks(fake_provider, make_stream_chunks("Hi"))
        await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)
        resp = await app_client.post("/api/ai/completions", json=STREAM_BODY, headers=ALICE)
        assert resp.status_code == 429
        assert resp.json()["code"] == "RATE_LIMIT_EXCEEDED"
