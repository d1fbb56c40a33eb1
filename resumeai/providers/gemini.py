"""Google Gemini provider using the Generative Language REST API."""

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
    AuthenticationError,
    EmptyResponseError,
    InitializationError,
    ProviderConnectionError,
    ProviderRateLimitError,
    error_from_status,
)

SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]


class GeminiProvider(LLMProvider):
    """Sends prompts to Gemini's generateContent / streamGenerateContent."""

    name = ProviderName.GEMINI

    def __init__(
        self,
        base_url: str = "https://generativelanguage.googleapis.com",
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

    @staticmethod
    def _build_headers(api_key: str) -> dict:
        return {"Content-Type": "application/json", "x-goog-api-key": api_key}

    def _model_url(self, config: ModelConfig, method: str) -> str:
        return f"{self.base_url}/v1beta/models/{config.model_name}:{method}"

    def _build_body(self, request: CompletionRequest, config: ModelConfig) -> dict:
        generation_config = {
            "maxOutputTokens": self._max_tokens(request, config),
            "temperature": self._temperature(request, config),
            "topK": 40,
            "topP": 0.95,
        }
        if request.stop_sequences:
            generation_config["stopSequences"] = list(request.stop_sequences)
        return {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }

    def _map_error(self, status_code: int, body_text: str) -> AIError:
        """Gemini reports a bad key as 400 API_KEY_INVALID, not 401."""
        try:
            error = json.loads(body_text).get("error", {})
        except (json.JSONDecodeError, AttributeError):
            error = {}

        reasons = {d.get("reason") for d in error.get("details", []) if isinstance(d, dict)}
        message = error.get("message") or "Gemini request failed"
        details = {"status_code": status_code, "status": error.get("status", "")}

        if "API_KEY_INVALID" in reasons:
            return AuthenticationError(message, provider=self.name.value, details=details)
        if error.get("status") == "RESOURCE_EXHAUSTED":
            return ProviderRateLimitError(message, provider=self.name.value, details=details)
        return error_from_status(status_code, self.name.value, body_text)

    @staticmethod
    def _extract_text(data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def _probe(self, config: ModelConfig) -> None:
        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}/v1beta/models",
                params={"pageSize": 1},
                headers=self._build_headers(config.api_key),
            )
        except httpx.HTTPError as e:
            raise InitializationError(
                f"Cannot reach Gemini: {e}", provider=self.name.value
            ) from e

        if response.status_code != 200:
            cause = self._map_error(response.status_code, response.text)
            raise InitializationError(
                f"Failed to initialize Gemini model: {cause.message}",
                provider=self.name.value,
                details={"cause": cause.code, **cause.details},
            ) from cause

    async def _complete(self, request: CompletionRequest, config: ModelConfig) -> CompletionResponse:
        client = await self._get_client()
        try:
            response = await client.post(
                self._model_url(config, "generateContent"),
                json=self._build_body(request, config),
                headers=self._build_headers(config.api_key),
            )
        except httpx.TimeoutException as e:
            raise ProviderConnectionError("Gemini timed out", provider=self.name.value) from e
        except httpx.HTTPError as e:
            raise ProviderConnectionError(
                f"Cannot reach Gemini: {e}", provider=self.name.value
            ) from e

        if response.status_code != 200:
            raise self._map_error(response.status_code, response.text)

        data = response.json()
        text = self._extract_text(data)
        if not text:
            raise EmptyResponseError("Empty response from Gemini", provider=self.name.value)

        usage = data.get("usageMetadata") or {}
        candidates = data.get("candidates") or [{}]
        return CompletionResponse(
            text=text,
            usage=TokenUsage(
                prompt_tokens=usage.get("promptTokenCount", 0),
                completion_tokens=usage.get("candidatesTokenCount", 0),
                total_tokens=usage.get("totalTokenCount", 0),
            ),
            metadata={
                "provider": self.name.value,
                "model": config.model_name,
                "finish_reason": candidates[0].get("finishReason"),
                "safety_ratings": (data.get("promptFeedback") or {}).get("safetyRatings", []),
            },
        )

    async def _stream(
        self, request: CompletionRequest, config: ModelConfig
    ) -> AsyncGenerator[StreamChunk, None]:
        client = await self._get_client()
        try:
            async with client.stream(
                "POST",
                self._model_url(config, "streamGenerateContent"),
                params={"alt": "sse"},
                json=self._build_body(request, config),
                headers=self._build_headers(config.api_key),
            ) as response:
                if response.status_code != 200:
                    body_bytes = await response.aread()
                    raise self._map_error(
                        response.status_code, body_bytes.decode(errors="replace")
                    )

                # Each SSE event is a full GenerateContentResponse; no [DONE] sentinel
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    try:
                        event = json.loads(line[len("data:"):].strip())
                    except json.JSONDecodeError:
                        continue
                    text = self._extract_text(event)
                    if text:
                        yield StreamChunk(text=text, is_complete=False)

        except AIError:
            raise
        except httpx.TimeoutException as e:
            raise ProviderConnectionError("Gemini timed out", provider=self.name.value) from e
        except httpx.HTTPError as e:
            raise ProviderConnectionError(
                f"Cannot reach Gemini: {e}", provider=self.name.value
            ) from e

        yield StreamChunk(text="", is_complete=True)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
