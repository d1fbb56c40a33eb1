"""Rate limiting backed by the shared key-value store.

Two forms share the same counters:

- ``RateLimiter.check`` is a sliding window approximated from two fixed
  buckets: the previous bucket's count is weighted by how much of it
  still overlaps the trailing window. Returns metadata for
  X-RateLimit-* headers and fails closed when the store is unavailable.
- ``RateLimiter.rate_limit`` applies fixed daily budgets per action and
  raises ``RateLimitExceededError``.
"""

import logging
import math
import re
import time
from dataclasses import dataclass

from resumeai.store.base import KeyValueStore

logger = logging.getLogger(__name__)

# Daily budgets for the simple form: action -> (points, window seconds)
ACTION_LIMITS: dict[str, tuple[int, int]] = {
    "ai_analysis": (10, 24 * 60 * 60),
    "ai_tailor": (20, 24 * 60 * 60),
}

# Returned when the store cannot be reached
FAIL_CLOSED_RETRY_AFTER = 60

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class RateLimitExceededError(Exception):
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.",
                 retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # unix epoch milliseconds
    retry_after: int | None = None  # seconds, only set when rejected


def parse_duration(duration: str | int | float) -> int:
    """Convert "30s" / "1m" / "2h" / "1d" (or plain seconds) to seconds."""
    if isinstance(duration, (int, float)):
        seconds = int(duration)
    else:
        match = _DURATION_RE.match(duration)
        if not match:
            raise ValueError(f"Invalid duration: {duration!r}")
        seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {duration!r}")
    return seconds


class RateLimiter:

    def __init__(self, store: KeyValueStore, prefix: str = "ratelimit"):
        self._store = store
        self._prefix = prefix

    def _bucket_key(self, identifier: str, bucket: int) -> str:
        return f"{self._prefix}:{identifier}:{bucket}"

    async def check(self, identifier: str, points: int, duration: str | int = "1m") -> RateLimitResult:
        """Count one hit for ``identifier`` and report whether it is allowed.

        Args:
            identifier: e.g. "analyze:<user_id>".
            points: Max hits within the trailing window.
            duration: Window length.
        """
        window = parse_duration(duration)
        now_ms = int(time.time() * 1000)
        window_ms = window * 1000
        bucket = now_ms // window_ms
        current_key = self._bucket_key(identifier, bucket)
        reset = (bucket + 1) * window_ms

        try:
            # Buckets live for two windows so the next one can still weigh them
            current = await self._store.incr(current_key, 1, ttl=window * 2)
            previous = int(await self._store.get(self._bucket_key(identifier, bucket - 1)) or 0)

            overlap = 1 - (now_ms % window_ms) / window_ms
            weighted = previous * overlap + current

            if weighted > points:
                # Rejected hits do not consume budget
                await self._store.incr(current_key, -1)
                return RateLimitResult(
                    success=False,
                    limit=points,
                    remaining=0,
                    reset=reset,
                    retry_after=max(1, math.ceil((reset - now_ms) / 1000)),
                )
        except Exception as e:
            logger.error(
                "Rate limit check failed, denying request",
                extra={"audit_data": {"identifier": identifier, "error": str(e)}},
            )
            return RateLimitResult(
                success=False,
                limit=0,
                remaining=0,
                reset=now_ms + FAIL_CLOSED_RETRY_AFTER * 1000,
                retry_after=FAIL_CLOSED_RETRY_AFTER,
            )

        return RateLimitResult(
            success=True,
            limit=points,
            remaining=max(0, points - math.ceil(weighted)),
            reset=reset,
        )

    async def reset(self, identifier: str, duration: str | int = "1m") -> None:
        """Clear the sliding window state for ``identifier``."""
        window_ms = parse_duration(duration) * 1000
        bucket = int(time.time() * 1000) // window_ms
        await self._store.delete(
            self._bucket_key(identifier, bucket),
            self._bucket_key(identifier, bucket - 1),
        )

    async def rate_limit(self, user_id: str, action: str) -> None:
        """Consume one point of ``action``'s daily budget for ``user_id``.

        Raises:
            RateLimitExceededError: budget spent, or the store is unavailable.
        """
        if action not in ACTION_LIMITS:
            raise ValueError(f"Unknown rate limit action: {action}")
        points, window = ACTION_LIMITS[action]
        key = f"rate_limit:{action}:{user_id}"

        try:
            used = int(await self._store.get(key) or 0)
            if used >= points:
                retry_after = await self._store.ttl(key)
                raise RateLimitExceededError(retry_after=retry_after or window)
            await self._store.incr(key, 1, ttl=window)
        except RateLimitExceededError:
            raise
        except Exception as e:
            logger.error(
                "Rate limit store unavailable, denying request",
                extra={"audit_data": {"user_id": user_id, "action": action, "error": str(e)}},
            )
            raise RateLimitExceededError(retry_after=FAIL_CLOSED_RETRY_AFTER) from e

    async def reset_action(self, user_id: str, action: str) -> None:
        await self._store.delete(f"rate_limit:{action}:{user_id}")
