"""Cross-process response cache on the shared key-value store.

Caching is an optimization only: read failures are reported as misses and
write failures are logged, never raised.
"""

import hashlib
import json
import logging
from typing import Any

from resumeai.store.base import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600


def fingerprint(content: str) -> str:
    """Stable content hash used in cache keys."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:32]


def _key(prefix: str, *parts: str) -> str:
    return ":".join((prefix, *parts))


def get_analysis_key(user_id: str, section: str, content: str) -> str:
    return _key("analysis", user_id, section, fingerprint(content))


def get_job_parse_key(user_id: str, content: str) -> str:
    return _key("job-parse", user_id, fingerprint(content))


def get_resume_key(purpose: str, user_id: str, content: str) -> str:
    """Key for resume-level operations (ATS score, suggestions, job analysis)."""
    return _key(purpose, user_id, fingerprint(content))


class ResponseCache:

    def __init__(self, store: KeyValueStore, default_ttl: int = DEFAULT_TTL):
        self._store = store
        self.default_ttl = default_ttl

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._store.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning("Cache read failed", extra={"audit_data": {"key": key, "error": str(e)}})
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._store.set(key, json.dumps(value, default=str), ttl=ttl or self.default_ttl)
        except Exception as e:
            logger.warning("Cache write failed", extra={"audit_data": {"key": key, "error": str(e)}})

    async def delete(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception as e:
            logger.warning("Cache delete failed", extra={"audit_data": {"key": key, "error": str(e)}})
