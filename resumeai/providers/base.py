"""Abstract base for LLM providers."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TypeVar

from resumeai.providers.errors import (
    AIError,
    ConfigurationError,
    RetryExhaustedError,
    StreamingNotSupportedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderName(str, Enum):
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"


@dataclass(frozen=True)
class ModelConfig:
    provider: ProviderName
    model_name: str
    temperature: float = 0.7
    max_tokens: int = 1000
    api_key: str = field(default="", repr=False)

    def __post_init__(self):
        if not 0 <= self.temperature <= 1:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if not self.model_name:
            raise ValueError("model_name is required")


@dataclass(frozen=True)
class CompletionRequest:
    prompt: str
    temperature: float | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] | None = None
    stream: bool = False

    def __post_init__(self):
        if self.temperature is not None and not 0 <= self.temperature <= 1:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.stop_sequences is not None:
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))

    def cache_key(self) -> str:
        """Deterministic serialization used for cache addressing."""
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class CompletionResponse:
    text: str
    usage: TokenUsage
    metadata: dict  # always has "provider" and "model"

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "usage": {
                "promptTokens": self.usage.prompt_tokens,
                "completionTokens": self.usage.completion_tokens,
                "totalTokens": self.usage.total_tokens,
            },
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class StreamChunk:
    text: str
    is_complete: bool  # True only for the terminal marker


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0


class LLMProvider(ABC):
    """Base class for LLM provider implementations.

    Subclasses implement the vendor call in ``_complete`` (and optionally
    ``_stream``); this class owns initialization state, the retry loop and
    the guarantee that only ``AIError`` escapes the adapter.
    """

    name: ProviderName

    def __init__(self, retry_policy: RetryPolicy | None = None, probe_on_init: bool = True):
        self.retry_policy = retry_policy or RetryPolicy()
        self.probe_on_init = probe_on_init
        self._config: ModelConfig | None = None

    @property
    def config(self) -> ModelConfig:
        if self._config is None:
            raise ConfigurationError(
                f"{self.name.value} provider not initialized",
                code="NOT_INITIALIZED",
                provider=self.name.value,
            )
        return self._config

    @property
    def supports_streaming(self) -> bool:
        return type(self)._stream is not LLMProvider._stream

    async def initialize(self, config: ModelConfig) -> None:
        """Validate credentials and store the configuration.

        Raises:
            ConfigurationError: the API key is empty.
            InitializationError: the vendor rejected the probe request.
        """
        if not config.api_key.strip():
            raise ConfigurationError(
                f"No API key configured for {config.provider.value}",
                code="MISSING_API_KEY",
                provider=config.provider.value,
            )
        if self.probe_on_init:
            await self._probe(config)
        self._config = config
        logger.info(
            "Provider initialized",
            extra={"audit_data": {"provider": self.name.value, "model": config.model_name}},
        )

    async def validate_config(self, config: ModelConfig) -> bool:
        """Return True when the vendor accepts the credentials. Never raises."""
        if not config.api_key.strip():
            return False
        try:
            await self._probe(config)
        except Exception as e:
            logger.warning(
                "Provider config validation failed",
                extra={"audit_data": {"provider": self.name.value, "error": str(e)}},
            )
            return False
        return True

    async def generate_completion(self, request: CompletionRequest) -> CompletionResponse:
        config = self.config
        return await self._with_retry(lambda: self._complete(request, config))

    async def generate_streaming_completion(
        self, request: CompletionRequest
    ) -> AsyncGenerator[StreamChunk, None]:
        """Stream text chunks followed by one ``is_complete`` marker.

        Streams are not retried; closing this generator closes the vendor
        stream, and with it the connection, before ``aclose`` returns.
        """
        config = self.config
        try:
            async with aclosing(self._stream(request, config)) as source:
                async for chunk in source:
                    yield chunk
        except AIError:
            raise
        except Exception as e:
            raise AIError(
                f"{self.name.value} streaming failed: {e}",
                code="STREAMING_ERROR",
                provider=self.name.value,
            ) from e

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass

    @abstractmethod
    async def _probe(self, config: ModelConfig) -> None:
        """Cheap authenticated call (list models). Raises InitializationError."""
        ...

    @abstractmethod
    async def _complete(self, request: CompletionRequest, config: ModelConfig) -> CompletionResponse:
        ...

    async def _stream(
        self, request: CompletionRequest, config: ModelConfig
    ) -> AsyncGenerator[StreamChunk, None]:
        raise StreamingNotSupportedError(
            f"{type(self).__name__} does not support streaming", provider=self.name.value
        )
        yield  # pragma: no cover

    def _temperature(self, request: CompletionRequest, config: ModelConfig) -> float:
        return request.temperature if request.temperature is not None else config.temperature

    def _max_tokens(self, request: CompletionRequest, config: ModelConfig) -> int:
        return request.max_tokens if request.max_tokens is not None else config.max_tokens

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        policy = self.retry_policy
        delay = policy.initial_delay
        last_error: AIError | None = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await operation()
            except AIError as e:
                last_error = e
            except Exception as e:
                raise AIError(
                    f"{self.name.value} completion failed: {e}",
                    code="COMPLETION_ERROR",
                    provider=self.name.value,
                ) from e

            if not last_error.retryable:
                raise last_error
            if attempt == policy.max_attempts:
                break

            logger.warning(
                "Retrying provider call",
                extra={"audit_data": {
                    "provider": self.name.value,
                    "attempt": attempt,
                    "code": last_error.code,
                    "delay_seconds": delay,
                }},
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, policy.max_delay)

        raise RetryExhaustedError(policy.max_attempts, last_error) from last_error
