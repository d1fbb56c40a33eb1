"""OpenAI and OpenAI-compatible chat completion providers."""

import json
from collections.abc import AsyncGenerator

import httpx

from resumeai.providers.base import (
    CompletionRequest,
    CompletionResponse,
    LLMProvider,
    ModelConfig,
    ProviderName,
    RetryPolicy,
    StreamChunk,
    TokenUsage,
)
from resumeai.providers.errors import (
    AIError,
    EmptyResponseError,
    InitializationError,
    ProviderConnectionError,
    error_from_status,
)

# Reasoning models reject sampling parameters
_REASONING_PREFIXES = ("o1", "o3", "o4")


class OpenAICompatibleProvider(LLMProvider):
    """Speaks the /chat/completions wire format over httpx."""

    models_path = "/v1/models"
    chat_path = "/v1/chat/completions"

    def __init__(
        self,
        base_url: str,
        retry_policy: RetryPolicy | None = None,
        probe_on_init: bool = True,
    ):
        super().__init__(retry_policy=retry_policy, probe_on_init=probe_on_init)
        self.base_url = base_url.rstrip("/")
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        return self._client

    def _build_headers(self, api_key: str) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def _build_body(self, request: CompletionRequest, config: ModelConfig, stream: bool) -> dict:
        body = {
            "model": config.model_name,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": self._max_tokens(request, config),
            "temperature": self._temperature(request, config),
            "stream": stream,
        }
        if request.stop_sequences:
            body["stop"] = list(request.stop_sequences)
        return body

    async def _probe(self, config: ModelConfig) -> None:
        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}{self.models_path}",
                headers=self._build_headers(config.api_key),
            )
        except httpx.HTTPError as e:
            raise InitializationError(
                f"Cannot reach {self.name.value}: {e}", provider=self.name.value
            ) from e

        if response.status_code != 200:
            cause = error_from_status(response.status_code, self.name.value, response.text)
            raise InitializationError(
                f"Failed to initialize {self.name.value} model: {cause.message}",
                provider=self.name.value,
                details={"cause": cause.code, **cause.details},
            ) from cause

    async def _complete(self, request: CompletionRequest, config: ModelConfig) -> CompletionResponse:
        url = f"{self.base_url}{self.chat_path}"
        client = await self._get_client()
        try:
            response = await client.post(
                url,
                json=self._build_body(request, config, stream=False),
                headers=self._build_headers(config.api_key),
            )
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(
                f"{self.name.value} timed out", provider=self.name.value
            ) from e
        except httpx.HTTPError as e:
            raise ProviderConnectionError(
                f"Cannot reach {self.name.value}: {e}", provider=self.name.value
            ) from e

        if response.status_code != 200:
            raise error_from_status(response.status_code, self.name.value, response.text)

        data = response.json()
        choices = data.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}
        text = message.get("content") or ""
        if not text:
            raise EmptyResponseError(
                f"Empty response from {self.name.value}", provider=self.name.value
            )

        usage = data.get("usage") or {}
        return CompletionResponse(
            text=text,
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0) or 0,
                completion_tokens=usage.get("completion_tokens", 0) or 0,
                total_tokens=usage.get("total_tokens", 0) or 0,
            ),
            metadata={
                "provider": self.name.value,
                "model": config.model_name,
                "finish_reason": choices[0].get("finish_reason"),
            },
        )

    async def _stream(
        self, request: CompletionRequest, config: ModelConfig
    ) -> AsyncGenerator[StreamChunk, None]:
        url = f"{self.base_url}{self.chat_path}"
        client = await self._get_client()
        try:
            async with client.stream(
                "POST",
                url,
                json=self._build_body(request, config, stream=True),
                headers=self._build_headers(config.api_key),
            ) as response:
                if response.status_code != 200:
                    body_bytes = await response.aread()
                    raise error_from_status(
                        response.status_code,
                        self.name.value,
                        body_bytes.decode(errors="replace"),
                    )

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line or not line.startswith("data:"):
                        continue

                    payload = line[len("data:"):].strip()
                    if payload == "[DONE]":
                        break

                    try:
                        chunk = json.loads(payload)
                    except json.JSONDecodeError:
                        continue
                    choices = chunk.get("choices", [])
                    if choices:
                        text = (choices[0].get("delta") or {}).get("content") or ""
                        if text:
                            yield StreamChunk(text=text, is_complete=False)

        except AIError:
            raise
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(
                f"{self.name.value} timed out", provider=self.name.value
            ) from e
        except httpx.HTTPError as e:
            raise ProviderConnectionError(
                f"Cannot reach {self.name.value}: {e}", provider=self.name.value
            ) from e

        yield StreamChunk(text="", is_complete=True)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI's hosted API."""

    name = ProviderName.OPENAI

    def _build_body(self, request: CompletionRequest, config: ModelConfig, stream: bool) -> dict:
        body = super()._build_body(request, config, stream)
        # Newer models take max_completion_tokens; reasoning models also reject temperature
        body["max_completion_tokens"] = body.pop("max_tokens")
        if config.model_name.startswith(_REASONING_PREFIXES):
            body.pop("temperature")
        return body
