"""Schemas for structured model output.

Every higher-level operation asks the model for JSON and validates it
against one of these models before it is cached or returned.
"""

import json
import re
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from resumeai.providers.errors import InvalidResponseError

M = TypeVar("M", bound=BaseModel)

Score = Annotated[float, Field(ge=0, le=100)]

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class _Output(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SectionAnalysis(_Output):
    score: Score
    feedback: list[str]
    suggestions: list[str]


class ATSCompatibility(_Output):
    overall: Score
    format: Score
    content: Score
    keywords: Score
    improvements: list[str] = []


class AnalysisMetadata(_Output):
    model_used: str
    processing_time: float  # milliseconds
    cached: bool = False


class AnalysisOutput(_Output):
    """What the model returns for a section analysis."""

    analysis: SectionAnalysis
    ats_compatibility: ATSCompatibility


class AnalyzeResponse(AnalysisOutput):
    metadata: AnalysisMetadata


class ExperienceRequirement(_Output):
    years: float
    level: str


class TechnicalRequirements(_Output):
    tools: list[str]
    platforms: list[str]
    methodologies: list[str]


class JobMetadata(_Output):
    seniority_level: str
    employment_type: str
    workplace_type: str
    locations: list[str]


class JobParseResult(_Output):
    required_skills: list[str]
    preferred_skills: list[str]
    experience: ExperienceRequirement
    education: list[str]
    responsibilities: list[str]
    technical_requirements: TechnicalRequirements
    soft_skills: list[str]
    benefits: list[str]
    metadata: JobMetadata


class ATSScore(_Output):
    overall: Score
    format: Score
    content: Score
    keywords: Score


class ResumeSuggestions(_Output):
    strengths: list[str]
    weaknesses: list[str]
    improvements: list[str]


class ExperienceLevels(_Output):
    minimum: float = 0
    preferred: float = 0


class JobAnalysis(_Output):
    key_requirements: list[str] = []
    technical_skills: list[str] = []
    soft_skills: list[str] = []
    role_responsibilities: list[str] = []
    experience_levels: ExperienceLevels = Field(default_factory=ExperienceLevels)


class TailoredResume(_Output):
    enhanced_content: Any = None
    match_score: Score = 0
    suggestions: list[str] = []
    matched_keywords: list[str] = []


def extract_json(text: str) -> Any:
    """Parse a JSON object out of model text, tolerating code fences and chatter."""
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise InvalidResponseError("Model output contains no JSON object")
    try:
        return json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise InvalidResponseError(f"Model output is not valid JSON: {e.msg}") from e


def parse_output(text: str, schema: type[M], provider: str = "unknown") -> M:
    """Parse and validate model text against ``schema``.

    Raises:
        InvalidResponseError: not JSON, or JSON that violates the schema.
    """
    try:
        return schema.model_validate(extract_json(text))
    except InvalidResponseError as e:
        e.provider = provider
        raise
    except ValidationError as e:
        raise InvalidResponseError(
            f"Model output failed {schema.__name__} validation",
            provider=provider,
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e
