"""Per-user settings schema and tier limits."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from resumeai.providers.registry import DEFAULT_MODEL_ID, MODEL_CATALOG

Tier = Literal["free", "pro"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class UserProfile(_CamelModel):
    name: str | None = None
    email: str = ""
    timezone: str | None = None


class AISettings(_CamelModel):
    default_model: str = DEFAULT_MODEL_ID
    temperature: float = Field(default=0.7, ge=0, le=1)

    @field_validator("default_model")
    @classmethod
    def _known_model(cls, value: str) -> str:
        if value not in MODEL_CATALOG:
            raise ValueError(f"unknown model {value!r}")
        return value


class Usage(_CamelModel):
    tier: Tier = "free"
    ai_requests: int = Field(default=0, ge=0)
    last_request: datetime | None = None


class UserSettings(_CamelModel):
    user_id: str
    profile: UserProfile = Field(default_factory=UserProfile)
    ai: AISettings = Field(default_factory=AISettings)
    usage: Usage = Field(default_factory=Usage)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def defaults(cls, user_id: str) -> "UserSettings":
        now = datetime.now(timezone.utc)
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class TierLimits:
    ai_requests: int
    models: frozenset[str]


TIER_LIMITS: dict[str, TierLimits] = {
    "free": TierLimits(ai_requests=25, models=frozenset({DEFAULT_MODEL_ID})),
    "pro": TierLimits(ai_requests=250, models=frozenset(MODEL_CATALOG)),
}
