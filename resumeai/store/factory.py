"""Factory for key-value store backends."""

from resumeai.config.settings import Settings
from resumeai.store.base import KeyValueStore, MemoryStore


def create_store(settings: Settings) -> KeyValueStore:
    backend = settings.store_backend

    if backend == "memory":
        return MemoryStore()

    if backend == "redis":
        # Lazy import to avoid the redis dependency for single-process setups
        from resumeai.store.redis_store import RedisStore
        return RedisStore(url=settings.redis_url, max_connections=settings.redis_max_connections)

    raise ValueError(f"Unknown store backend: {backend}")
