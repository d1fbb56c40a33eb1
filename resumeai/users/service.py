"""User settings store with an in-process read cache.

The read path prefers availability: any store or schema failure yields
fresh defaults instead of an error. Writes through ``update_settings``
are strict; usage increments are best-effort.
"""

import logging
import time
from datetime import datetime, timezone

from pydantic.alias_generators import to_camel

from resumeai.store.base import KeyValueStore
from resumeai.users.models import TIER_LIMITS, TierLimits, UserSettings

logger = logging.getLogger(__name__)

UPDATABLE_SECTIONS = ("profile", "ai", "usage")


def settings_key(user_id: str) -> str:
    return f"settings:{user_id}"


class UserSettingsService:

    def __init__(self, store: KeyValueStore, cache_ttl: float = 300):
        self._store = store
        self.cache_ttl = cache_ttl
        # user_id -> (settings, expires_at)
        self._cache: dict[str, tuple[UserSettings, float]] = {}

    def _get_cached(self, user_id: str) -> UserSettings | None:
        entry = self._cache.get(user_id)
        if entry is None:
            return None
        settings, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._cache[user_id]
            return None
        return settings

    def _set_cached(self, settings: UserSettings) -> None:
        self._cache[settings.user_id] = (settings, time.monotonic() + self.cache_ttl)

    async def _load(self, user_id: str) -> UserSettings | None:
        raw = await self._store.get(settings_key(user_id))
        if raw is None:
            return None
        return UserSettings.model_validate_json(raw)

    async def _save(self, settings: UserSettings) -> None:
        await self._store.set(settings_key(settings.user_id), settings.model_dump_json(by_alias=True))

    async def get_user_settings(self, user_id: str) -> UserSettings:
        """Return stored settings, creating free-tier defaults on first access."""
        cached = self._get_cached(user_id)
        if cached is not None:
            return cached

        try:
            settings = await self._load(user_id)
        except Exception as e:
            logger.error(
                "Failed to load user settings, using defaults",
                extra={"audit_data": {"user_id": user_id, "error": str(e)}},
            )
            return UserSettings.defaults(user_id)

        if settings is None:
            settings = UserSettings.defaults(user_id)
            try:
                await self._save(settings)
            except Exception as e:
                logger.warning(
                    "Failed to persist default settings",
                    extra={"audit_data": {"user_id": user_id, "error": str(e)}},
                )
                return settings

        self._set_cached(settings)
        return settings

    async def update_settings(self, user_id: str, updates: dict) -> UserSettings:
        """Merge section-level partial updates, validate, persist.

        Raises:
            pydantic.ValidationError: the merged settings violate the schema.
            ValueError: ``updates`` names an unknown section.
        """
        unknown = set(updates) - set(UPDATABLE_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown settings sections: {sorted(unknown)}")

        current = await self.get_user_settings(user_id)
        merged = current.to_json()
        for section, values in updates.items():
            if values:
                values = {to_camel(k): v for k, v in values.items()}
                merged[section] = {**merged[section], **values}
        merged["updatedAt"] = datetime.now(timezone.utc).isoformat()

        validated = UserSettings.model_validate(merged)
        await self._save(validated)
        self._set_cached(validated)
        logger.info("User settings updated", extra={"audit_data": {"user_id": user_id}})
        return validated

    async def update_usage(self, user_id: str, delta: int = 1) -> None:
        """Add ``delta`` AI requests and stamp lastRequest. Never raises."""
        try:
            # Read the shared store, not the local cache, so other instances' increments count
            settings = await self._load(user_id) or UserSettings.defaults(user_id)
            now = datetime.now(timezone.utc)
            usage = settings.usage.model_copy(
                update={"ai_requests": settings.usage.ai_requests + delta, "last_request": now}
            )
            updated = settings.model_copy(update={"usage": usage, "updated_at": now})
            await self._save(updated)
            self._set_cached(updated)
        except Exception as e:
            logger.error(
                "Failed to update usage",
                extra={"audit_data": {"user_id": user_id, "delta": delta, "error": str(e)}},
            )

    def invalidate(self, user_id: str) -> None:
        self._cache.pop(user_id, None)

    @staticmethod
    def limits_for(settings: UserSettings) -> TierLimits:
        return TIER_LIMITS[settings.usage.tier]

    def check_quota(self, settings: UserSettings) -> bool:
        return settings.usage.ai_requests < self.limits_for(settings).ai_requests
