"""AI orchestration: one entry point over the provider factory and caches.

Two cache tiers sit in front of the vendors:

- a process-local ``LocalCache`` for raw completions, keyed by model id
  plus the serialized request;
- the shared ``ResponseCache`` for the structured resume operations,
  keyed by user and a fingerprint of the input.

A user's ``aiRequests`` counter moves once per successful vendor call and
never on a cache hit.
"""

import json
import logging
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from resumeai.ai import prompts
from resumeai.ai.schemas import (
    AnalysisMetadata,
    AnalysisOutput,
    AnalyzeResponse,
    ATSScore,
    JobAnalysis,
    JobParseResult,
    ResumeSuggestions,
    TailoredResume,
    parse_output,
)
from resumeai.ai.stream import CompletionStream
from resumeai.cache.local import LocalCache
from resumeai.cache.response import (
    ResponseCache,
    get_analysis_key,
    get_job_parse_key,
    get_resume_key,
)
from resumeai.logging.audit import RequestTimer, record_metric
from resumeai.providers.base import CompletionRequest, CompletionResponse
from resumeai.providers.errors import AIError, StreamingNotSupportedError
from resumeai.providers.registry import ProviderFactory
from resumeai.security.ratelimit import RateLimiter
from resumeai.users.service import UserSettingsService

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _resume_fingerprint_input(resume: dict, job_description: str | None) -> str:
    return f"{json.dumps(resume, sort_keys=True, default=str)}\n{job_description or ''}"


class AIService:

    def __init__(
        self,
        provider_factory: ProviderFactory,
        user_settings: UserSettingsService,
        response_cache: ResponseCache,
        local_cache: LocalCache,
        rate_limiter: RateLimiter,
        stream_idle_timeout: float = 30.0,
        analysis_cache_ttl: int = 3600,
        job_parse_cache_ttl: int = 86400,
    ):
        self.provider_factory = provider_factory
        self._user_settings = user_settings
        self._response_cache = response_cache
        self._local_cache = local_cache
        self._rate_limiter = rate_limiter
        self.stream_idle_timeout = stream_idle_timeout
        self.analysis_cache_ttl = analysis_cache_ttl
        self.job_parse_cache_ttl = job_parse_cache_ttl

    def _resolve_model_id(self, model_name: str | None) -> str:
        return model_name or self.provider_factory.active_model_id or self.provider_factory.default_model_id

    def completion_cache_key(self, request: CompletionRequest, model_name: str | None = None) -> str:
        return f"{self._resolve_model_id(model_name)}:{request.cache_key()}"

    async def generate_completion(
        self,
        request: CompletionRequest,
        user_id: str | None = None,
        model_name: str | None = None,
    ) -> CompletionResponse:
        """Run one completion, served from the local cache when possible.

        Raises:
            AIError: any adapter failure, unchanged.
        """
        cache_key = self.completion_cache_key(request, model_name)
        cached = self._local_cache.get(cache_key)
        if cached is not None:
            record_metric("completion_cache_hit", model=self._resolve_model_id(model_name))
            return cached

        provider = await self.provider_factory.get_provider(model_name)
        try:
            response = await provider.generate_completion(request)
        except AIError as e:
            logger.error(
                "AI completion failed",
                extra={"audit_data": {"provider": e.provider, "code": e.code, "user_id": user_id}},
            )
            raise

        self._local_cache.set(cache_key, response)
        if user_id:
            await self._user_settings.update_usage(user_id)
        return response

    def generate_streaming_completion(
        self,
        request: CompletionRequest,
        user_id: str | None = None,
        model_name: str | None = None,
    ) -> CompletionStream:
        """Return a lazily opened stream handle.

        Provider resolution happens on first iteration, so configuration
        errors surface from the iterator.
        """
        model_id = self._resolve_model_id(model_name)

        async def open_stream():
            provider = await self.provider_factory.get_provider(model_name)
            if not provider.supports_streaming:
                raise StreamingNotSupportedError(
                    f"Streaming not supported for {model_id}", provider=provider.name.value
                )
            stream.provider = provider.name.value
            return provider.generate_streaming_completion(request)

        async def on_complete():
            if user_id:
                await self._user_settings.update_usage(user_id)

        stream = CompletionStream(open_stream, idle_timeout=self.stream_idle_timeout, on_complete=on_complete)
        return stream

    async def _read_cached(self, op: str, key: str, schema: type[M], user_id: str) -> M | None:
        cached = await self._response_cache.get(key)
        if cached is None:
            return None
        try:
            result = schema.model_validate(cached)
        except ValidationError:
            logger.warning("Discarding invalid cache entry", extra={"audit_data": {"op": op, "key": key}})
            await self._response_cache.delete(key)
            return None
        record_metric(f"{op}_cache_hit", user_id=user_id)
        return result

    async def _cached_structured(
        self,
        op: str,
        key: str,
        ttl: int,
        request: CompletionRequest,
        schema: type[M],
        user_id: str,
        model_name: str | None = None,
    ) -> M:
        """Shared-cache lookup, else one completion validated against ``schema``."""
        cached = await self._read_cached(op, key, schema, user_id)
        if cached is not None:
            return cached

        response = await self.generate_completion(request, user_id=user_id, model_name=model_name)
        result = parse_output(response.text, schema, provider=response.metadata.get("provider", "unknown"))
        await self._response_cache.set(key, result.to_json(), ttl=ttl)
        return result

    async def analyze_content(
        self,
        user_id: str,
        content: str,
        section: str,
        mode: str = "analyze",
        job_description: str | None = None,
        model_name: str | None = None,
    ) -> AnalyzeResponse:
        """Analyze one resume section; output is validated before it is cached."""
        model_id = self._resolve_model_id(model_name)
        key = get_analysis_key(user_id, section, f"{mode}\n{content}\n{job_description or ''}")

        with RequestTimer() as timer:
            cached = await self._read_cached("analysis", key, AnalyzeResponse, user_id)
            if cached is None:
                request = CompletionRequest(
                    prompt=prompts.build_analysis_prompt(section, content, mode, job_description),
                    temperature=0.3,
                )
                response = await self.generate_completion(request, user_id=user_id, model_name=model_name)
                output = parse_output(
                    response.text, AnalysisOutput, provider=response.metadata.get("provider", "unknown")
                )

        if cached is not None:
            metadata = cached.metadata.model_copy(update={"cached": True, "processing_time": timer.elapsed_ms})
            return cached.model_copy(update={"metadata": metadata})

        result = AnalyzeResponse(
            analysis=output.analysis,
            ats_compatibility=output.ats_compatibility,
            metadata=AnalysisMetadata(model_used=model_id, processing_time=timer.elapsed_ms),
        )
        await self._response_cache.set(key, result.to_json(), ttl=self.analysis_cache_ttl)
        return result

    async def parse_job(
        self,
        user_id: str,
        content: str,
        target_role: str | None = None,
        model_name: str | None = None,
    ) -> JobParseResult:
        request = CompletionRequest(prompt=prompts.build_job_parse_prompt(content, target_role), temperature=0.2)
        key = get_job_parse_key(user_id, f"{content}\n{target_role or ''}")
        return await self._cached_structured(
            "job_parse", key, self.job_parse_cache_ttl, request, JobParseResult, user_id, model_name
        )

    async def generate_ats_score(
        self,
        user_id: str,
        resume: dict,
        job_description: str | None = None,
        model_name: str | None = None,
    ) -> ATSScore:
        request = CompletionRequest(
            prompt=prompts.build_ats_score_prompt(resume, job_description), temperature=0.3
        )
        key = get_resume_key("ats-score", user_id, _resume_fingerprint_input(resume, job_description))
        return await self._cached_structured(
            "ats_score", key, self.analysis_cache_ttl, request, ATSScore, user_id, model_name
        )

    async def generate_suggestions(
        self,
        user_id: str,
        resume: dict,
        job_description: str | None = None,
        model_name: str | None = None,
    ) -> ResumeSuggestions:
        request = CompletionRequest(
            prompt=prompts.build_suggestions_prompt(resume, job_description), temperature=0.7
        )
        key = get_resume_key("suggestions", user_id, _resume_fingerprint_input(resume, job_description))
        return await self._cached_structured(
            "suggestions", key, self.analysis_cache_ttl, request, ResumeSuggestions, user_id, model_name
        )

    async def analyze_job_description(
        self, user_id: str, description: str, model_name: str | None = None
    ) -> JobAnalysis:
        """Extract requirements from a job description.

        Raises:
            RateLimitExceededError: the user's daily ``ai_analysis`` budget is spent.
        """
        await self._rate_limiter.rate_limit(user_id, "ai_analysis")
        request = CompletionRequest(prompt=prompts.build_job_analysis_prompt(description), temperature=0.2)
        key = get_resume_key("job-analysis", user_id, description)
        return await self._cached_structured(
            "job_analysis", key, self.job_parse_cache_ttl, request, JobAnalysis, user_id, model_name
        )

    async def tailor_resume(
        self,
        user_id: str,
        resume: dict,
        job_analysis: JobAnalysis,
        model_name: str | None = None,
    ) -> TailoredResume:
        """Rewrite ``resume`` against ``job_analysis``. Never cached.

        Raises:
            RateLimitExceededError: the user's daily ``ai_tailor`` budget is spent.
        """
        await self._rate_limiter.rate_limit(user_id, "ai_tailor")
        request = CompletionRequest(
            prompt=prompts.build_tailor_prompt(resume, job_analysis.to_json()), temperature=0.5
        )
        response = await self.generate_completion(request, user_id=user_id, model_name=model_name)
        return parse_output(response.text, TailoredResume, provider=response.metadata.get("provider", "unknown"))

    async def validate_provider(self, model_id: str) -> bool:
        try:
            await self.provider_factory.get_provider(model_id)
        except AIError:
            return False
        return True

    def clear_cache(self) -> None:
        self._local_cache.clear()

    def remove_cache_entry(self, key: str) -> None:
        self._local_cache.delete(key)
