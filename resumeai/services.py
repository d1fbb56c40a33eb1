"""Composition root: every long-lived service object, built leaves first."""

import logging
from dataclasses import dataclass

from resumeai.ai.service import AIService
from resumeai.cache.local import LocalCache
from resumeai.cache.response import ResponseCache
from resumeai.config.settings import Settings
from resumeai.providers.registry import (
    ProviderBuilder,
    ProviderFactory,
    build_model_registry,
    default_builders,
)
from resumeai.providers.base import ProviderName
from resumeai.security.auth import StaticTokenVerifier, TokenVerifier
from resumeai.security.ratelimit import RateLimiter
from resumeai.store.base import KeyValueStore
from resumeai.store.factory import create_store
from resumeai.users.service import UserSettingsService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: KeyValueStore
    token_verifier: TokenVerifier
    rate_limiter: RateLimiter
    response_cache: ResponseCache
    user_settings: UserSettingsService
    provider_factory: ProviderFactory
    ai: AIService

    async def close(self) -> None:
        await self.provider_factory.close_all()
        await self.store.close()


def build_services(
    settings: Settings,
    store: KeyValueStore | None = None,
    builders: dict[ProviderName, ProviderBuilder] | None = None,
) -> Services:
    """Wire the object graph. ``store`` and ``builders`` are injectable for tests."""
    store = store or create_store(settings)
    rate_limiter = RateLimiter(store)
    response_cache = ResponseCache(store, default_ttl=settings.analysis_cache_ttl)
    user_settings = UserSettingsService(store, cache_ttl=settings.settings_cache_ttl)
    provider_factory = ProviderFactory(
        build_model_registry(settings),
        builders if builders is not None else default_builders(settings),
        default_model_id=settings.default_model,
    )
    ai = AIService(
        provider_factory,
        user_settings,
        response_cache,
        LocalCache(ttl=settings.completion_cache_ttl, max_entries=settings.completion_cache_max_entries),
        rate_limiter,
        stream_idle_timeout=settings.stream_idle_timeout,
        analysis_cache_ttl=settings.analysis_cache_ttl,
        job_parse_cache_ttl=settings.job_parse_cache_ttl,
    )
    logger.info(
        "Services built",
        extra={"audit_data": {"store_backend": settings.store_backend, "default_model": settings.default_model}},
    )
    return Services(
        settings=settings,
        store=store,
        token_verifier=StaticTokenVerifier(settings.auth_token_map),
        rate_limiter=rate_limiter,
        response_cache=response_cache,
        user_settings=user_settings,
        provider_factory=provider_factory,
        ai=ai,
    )
