"""Shared key-value store abstraction + in-process implementation."""

import time
from abc import ABC, abstractmethod


class StoreError(Exception):
    """The backing store could not complete an operation."""


class KeyValueStore(ABC):
    """Minimal get/set/increment/expire surface over string values."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store ``value``; ``ttl`` in seconds, None keeps it until deleted."""
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> None:
        ...

    @abstractmethod
    async def incr(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically add ``amount`` and return the new value.

        ``ttl`` is applied only when the key has no expiry yet, so repeated
        increments never extend a window.
        """
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int | None:
        """Seconds until expiry, None when missing or persistent."""
        ...

    async def close(self) -> None:
        pass


class MemoryStore(KeyValueStore):
    """Single-process store for development and tests.

    Not shared across workers; use RedisStore for horizontally scaled setups.
    """

    def __init__(self):
        # key -> (value, expires_at or None)
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def incr(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        entry = self._live(key)
        if entry is None:
            current, expires_at = 0, None
        else:
            try:
                current = int(entry[0])
            except ValueError as e:
                raise StoreError(f"Value at {key!r} is not an integer") from e
            expires_at = entry[1]

        if expires_at is None and ttl:
            expires_at = time.monotonic() + ttl

        current += amount
        self._data[key] = (str(current), expires_at)
        return current

    async def ttl(self, key: str) -> int | None:
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return max(0, int(entry[1] - time.monotonic()))

    def clear(self) -> None:
        self._data.clear()
