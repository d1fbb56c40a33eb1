"""Model registry and provider factory.

The registry maps logical model ids ("gemini-2-flash") to a ModelConfig.
The factory turns a model id into an initialized adapter, caching one
adapter per model id so two models on the same vendor never share state.
"""

import asyncio
import logging
from collections.abc import Callable

from resumeai.config.settings import Settings
from resumeai.providers.base import LLMProvider, ModelConfig, ProviderName, RetryPolicy
from resumeai.providers.errors import AIError, InitializationError, ModelNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "gemini-2-flash"

# Logical id -> (provider, vendor model name)
MODEL_CATALOG: dict[str, tuple[ProviderName, str]] = {
    "gemini-2-flash": (ProviderName.GEMINI, "gemini-2.0-flash-001"),
    "deepseek-r1": (ProviderName.DEEPSEEK, "deepseek-reasoner"),
    "openai-o3-mini": (ProviderName.OPENAI, "o3-mini"),
}

ProviderBuilder = Callable[[], LLMProvider]


def build_model_registry(settings: Settings) -> dict[str, ModelConfig]:
    """Attach the configured API key to every catalog entry."""
    api_keys = {
        ProviderName.GEMINI: settings.gemini_api_key,
        ProviderName.DEEPSEEK: settings.deepseek_api_key,
        ProviderName.OPENAI: settings.openai_api_key,
    }
    return {
        model_id: ModelConfig(provider=provider, model_name=model_name, api_key=api_keys[provider])
        for model_id, (provider, model_name) in MODEL_CATALOG.items()
    }


def default_builders(settings: Settings) -> dict[ProviderName, ProviderBuilder]:
    """Constructors for every supported vendor."""
    # Lazy imports keep the vendor modules out of processes that never use them
    from resumeai.providers.deepseek import DeepSeekProvider
    from resumeai.providers.gemini import GeminiProvider
    from resumeai.providers.openai import OpenAIProvider

    policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
    )
    probe = settings.provider_probe_on_init
    return {
        ProviderName.GEMINI: lambda: GeminiProvider(
            base_url=settings.gemini_base_url, retry_policy=policy, probe_on_init=probe
        ),
        ProviderName.DEEPSEEK: lambda: DeepSeekProvider(
            base_url=settings.deepseek_base_url, retry_policy=policy, probe_on_init=probe
        ),
        ProviderName.OPENAI: lambda: OpenAIProvider(
            base_url=settings.openai_base_url, retry_policy=policy, probe_on_init=probe
        ),
    }


class ProviderFactory:
    """Resolves model ids to adapters and tracks the active one."""

    def __init__(
        self,
        registry: dict[str, ModelConfig],
        builders: dict[ProviderName, ProviderBuilder],
        default_model_id: str = DEFAULT_MODEL_ID,
    ):
        self.registry = registry
        self._builders = builders
        self.default_model_id = default_model_id
        self._providers: dict[str, LLMProvider] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._active_model_id: str | None = None

    @property
    def active_model_id(self) -> str | None:
        return self._active_model_id

    @property
    def active_config(self) -> ModelConfig | None:
        if self._active_model_id is None:
            return None
        return self.registry[self._active_model_id]

    def get_config(self, model_id: str) -> ModelConfig:
        config = self.registry.get(model_id)
        if config is None:
            raise ModelNotFoundError(f"Model not found: {model_id}", details={"model": model_id})
        return config

    def _build(self, config: ModelConfig) -> LLMProvider:
        builder = self._builders.get(config.provider)
        if builder is None:
            raise InitializationError(
                f"Unknown provider: {config.provider.value}",
                code="UNKNOWN_PROVIDER",
                provider=config.provider.value,
            )
        return builder()

    async def get_provider(self, model_id: str | None = None) -> LLMProvider:
        """Return the adapter for ``model_id`` (or the active/default one).

        Raises:
            ModelNotFoundError: ``model_id`` is not in the registry.
            ConfigurationError / InitializationError: the adapter could not start.
        """
        if model_id is None:
            if self._active_model_id is not None:
                return self._providers[self._active_model_id]
            model_id = self.default_model_id

        config = self.get_config(model_id)

        provider = self._providers.get(model_id)
        if provider is None:
            async with self._locks.setdefault(model_id, asyncio.Lock()):
                # Another caller may have finished initialising while we waited
                provider = self._providers.get(model_id)
                if provider is None:
                    provider = await self._start(config)
                    self._providers[model_id] = provider

        self._active_model_id = model_id
        return provider

    async def _start(self, config: ModelConfig) -> LLMProvider:
        provider = self._build(config)
        try:
            await provider.initialize(config)
        except AIError:
            await provider.close()
            raise
        return provider

    async def set_default_provider(self, model_id: str) -> None:
        await self.get_provider(model_id)

    async def validate_config(self, config: ModelConfig) -> bool:
        try:
            provider = self._build(config)
        except AIError:
            return False
        try:
            return await provider.validate_config(config)
        finally:
            await provider.close()

    def clear_providers(self) -> None:
        """Forget every cached adapter. Connections are not closed; see close_all."""
        self._providers.clear()
        self._active_model_id = None

    async def close_all(self) -> None:
        """Gracefully shut down all provider connections."""
        for provider in self._providers.values():
            await provider.close()
        self.clear_providers()
