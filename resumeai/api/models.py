"""Request bodies for the HTTP API (camelCase on the wire)."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class AnalyzeRequest(_Request):
    content: str = Field(min_length=50)
    section: str = Field(min_length=1, max_length=100)
    job_description: str | None = None
    model_name: str | None = None
    mode: Literal["analyze", "improve"] = "analyze"


class JobParseRequest(_Request):
    content: str = Field(min_length=100, max_length=10000)
    target_role: str | None = None
    model_name: str | None = None


class ResumeRequest(_Request):
    resume: dict[str, Any]
    job_description: str | None = None
    model_name: str | None = None


class TailorRequest(_Request):
    resume: dict[str, Any]
    job_description: str = Field(min_length=50)
    model_name: str | None = None


class CompletionOptions(_Request):
    temperature: float | None = Field(default=None, ge=0, le=1)
    max_tokens: int | None = Field(default=None, gt=0)
    stop_sequences: list[str] | None = None
    stream: bool = False


class CompletionApiRequest(_Request):
    prompt: str = Field(min_length=1)
    model_name: str | None = None
    options: CompletionOptions = Field(default_factory=CompletionOptions)


class SettingsUpdateRequest(_Request):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    profile: dict[str, Any] | None = None
    ai: dict[str, Any] | None = None
