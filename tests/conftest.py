"""Shared fixtures for the resume AI service test suite."""

import json
import logging

import pytest

from resumeai.config.settings import Settings, get_settings
from resumeai.providers.base import (
    CompletionRequest,
    CompletionResponse,
    LLMProvider,
    ModelConfig,
    ProviderName,
    StreamChunk,
    TokenUsage,
)
from resumeai.services import build_services
from resumeai.store.base import MemoryStore

ANALYSIS_OUTPUT = {
    "analysis": {
        "score": 72,
        "feedback": ["Clear summary", "Lacks metrics"],
        "suggestions": ["Quantify the team size you led"],
    },
    "atsCompatibility": {
        "overall": 80,
        "format": 85,
        "content": 75,
        "keywords": 70,
        "improvements": ["Add role-specific keywords"],
    },
}

SUMMARY_CONTENT = (
    "Backend engineer with eight years of experience building payment "
    "platforms in Python and Go, leading small teams."
)


class FakeProvider(LLMProvider):
    """In-memory provider: returns queued texts and records every request."""

    def __init__(self, name: ProviderName = ProviderName.GEMINI, texts=None, stream_texts=None):
        super().__init__(probe_on_init=False)
        self.name = name
        self.texts = list(texts or [json.dumps(ANALYSIS_OUTPUT)])
        self.stream_texts = list(stream_texts or ["Hello", " world"])
        self.requests: list[CompletionRequest] = []
        self.closed = False

    async def _probe(self, config: ModelConfig) -> None:
        pass

    async def _complete(self, request: CompletionRequest, config: ModelConfig) -> CompletionResponse:
        self.requests.append(request)
        text = self.texts.pop(0) if len(self.texts) > 1 else self.texts[0]
        return CompletionResponse(
            text=text,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            metadata={"provider": self.name.value, "model": config.model_name},
        )

    async def _stream(self, request: CompletionRequest, config: ModelConfig):
        self.requests.append(request)
        for text in self.stream_texts:
            yield StreamChunk(text=text, is_complete=False)
        yield StreamChunk(text="", is_complete=True)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging so caplog keeps seeing package records."""
    yield
    logger = logging.getLogger("resumeai")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(AUTH_TOKENS="tok:user-1", STORE_BACKEND="memory")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        auth_tokens="token-alice:alice,token-bob:bob",
        gemini_api_key="gm-test",
        deepseek_api_key="ds-test",
        openai_api_key="sk-test",
        provider_probe_on_init=False,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def services(settings, store, fake_provider):
    """Isolated service graph; every vendor resolves to ``fake_provider``."""
    builders = {name: (lambda: fake_provider) for name in ProviderName}
    return build_services(settings, store=store, builders=builders)


def make_stream_chunks(text: str, chunk_size: int = 5) -> list[StreamChunk]:
    """Split text into StreamChunks followed by the completion marker."""
    chunks = [
        StreamChunk(text=text[i:i + chunk_size], is_complete=False)
        for i in range(0, len(text), chunk_size)
    ]
    chunks.append(StreamChunk(text="", is_complete=True))
    return chunks
