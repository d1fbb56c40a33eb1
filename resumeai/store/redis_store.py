"""Redis-backed store shared by every service instance."""

import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from resumeai.store.base import KeyValueStore, StoreError

logger = logging.getLogger(__name__)


class RedisStore(KeyValueStore):
    """KeyValueStore over redis.asyncio with a lazily created connection pool."""

    def __init__(self, url: str, max_connections: int = 20):
        self._url = url
        self._max_connections = max_connections
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        if self._client is None:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._max_connections,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self._client = Redis(connection_pool=self._pool)
            logger.info("Initialized Redis connection pool")
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._get_client().get(key)
        except RedisError as e:
            raise StoreError(f"GET {key} failed: {e}") from e

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._get_client().set(key, value, ex=ttl or None)
        except RedisError as e:
            raise StoreError(f"SET {key} failed: {e}") from e

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._get_client().delete(*keys)
        except RedisError as e:
            raise StoreError(f"DEL failed: {e}") from e

    async def incr(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        try:
            async with self._get_client().pipeline(transaction=True) as pipe:
                pipe.incrby(key, amount)
                if ttl:
                    # NX: only set an expiry on keys that have none (Redis >= 7)
                    pipe.expire(key, ttl, nx=True)
                results = await pipe.execute()
        except RedisError as e:
            raise StoreError(f"INCRBY {key} failed: {e}") from e
        return int(results[0])

    async def ttl(self, key: str) -> int | None:
        try:
            remaining = await self._get_client().ttl(key)
        except RedisError as e:
            raise StoreError(f"TTL {key} failed: {e}") from e
        # -2 missing, -1 no expiry
        return remaining if remaining >= 0 else None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
            logger.info("Closed Redis connection pool")
