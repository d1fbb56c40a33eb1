"""Resume AI service: FastAPI application entry point.

Authenticates callers, enforces plan quotas and per-route rate limits,
and fronts the LLM vendors with cached resume analysis operations.
"""

import json
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, Security
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials

from resumeai.api.errors import ApiError, ErrorCode, register_error_handlers
from resumeai.api.models import (
    AnalyzeRequest,
    CompletionApiRequest,
    JobParseRequest,
    ResumeRequest,
    SettingsUpdateRequest,
    TailorRequest,
)
from resumeai.config.settings import get_settings
from resumeai.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from resumeai.providers.base import CompletionRequest
from resumeai.providers.errors import AIError
from resumeai.providers.registry import MODEL_CATALOG
from resumeai.security.auth import authenticate, bearer_scheme
from resumeai.security.ratelimit import RateLimitResult
from resumeai.services import Services, build_services

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_settings())
    get_audit_logger().info("Service started")
    yield
    await app.state.services.close()
    app.state.services = None
    get_audit_logger().info("Service stopped")


app = FastAPI(
    title="Resume AI Service",
    description="Resume analysis and tailoring backed by multiple LLM vendors",
    version=VERSION,
    lifespan=lifespan,
)
register_error_handlers(app)


@app.middleware("http")
async def request_context(request: Request, call_next):
    rid = generate_request_id()
    request_id_var.set(rid)
    with RequestTimer() as timer:
        response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    get_audit_logger().info(
        "Request completed",
        extra={"audit_data": {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": timer.elapsed_ms,
        }},
    )
    return response


def get_services(request: Request) -> Services:
    """The app's Services; built on first use when the lifespan hook did not run."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(get_settings())
        request.app.state.services = services
    return services


async def current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    services: Services = Depends(get_services),
) -> str:
    return await authenticate(credentials, services.token_verifier)


def _rate_headers(rate: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(rate.limit),
        "X-RateLimit-Remaining": str(rate.remaining),
        "X-RateLimit-Reset": str(rate.reset),
    }


async def _admit(
    services: Services, user_id: str, route: str, points: int, model_name: str | None
) -> tuple[str, RateLimitResult]:
    """Quota -> rate limit -> model access. Returns the model id to use.

    Raises:
        ApiError: 429 USAGE_LIMIT_EXCEEDED / RATE_LIMIT_EXCEEDED, 403 MODEL_NOT_AVAILABLE.
    """
    logger = get_audit_logger()
    user_settings = await services.user_settings.get_user_settings(user_id)
    limits = services.user_settings.limits_for(user_settings)

    if not services.user_settings.check_quota(user_settings):
        logger.warning(
            "Usage limit exceeded",
            extra={"audit_data": {
                "user_id": user_id,
                "tier": user_settings.usage.tier,
                "ai_requests": user_settings.usage.ai_requests,
            }},
        )
        raise ApiError(
            429,
            ErrorCode.USAGE_LIMIT_EXCEEDED,
            "AI request limit reached for your plan",
            details={"limit": limits.ai_requests, "used": user_settings.usage.ai_requests},
        )

    rate = await services.rate_limiter.check(
        f"{route}:{user_id}", points, services.settings.rate_limit_window
    )
    if not rate.success:
        logger.warning(
            "Rate limit exceeded",
            extra={"audit_data": {"user_id": user_id, "route": route, "retry_after": rate.retry_after}},
        )
        raise ApiError(
            429,
            ErrorCode.RATE_LIMIT_EXCEEDED,
            "Too many requests",
            headers=_rate_headers(rate),
            retry_after=rate.retry_after,
        )

    model_id = model_name or user_settings.ai.default_model
    if model_id not in MODEL_CATALOG or model_id not in limits.models:
        logger.warning(
            "Model not available",
            extra={"audit_data": {"user_id": user_id, "model": model_id, "tier": user_settings.usage.tier}},
        )
        raise ApiError(
            403,
            ErrorCode.MODEL_NOT_AVAILABLE,
            f"Model '{model_id}' is not available on your plan",
            details={"model": model_id, "available": sorted(limits.models)},
        )

    return model_id, rate


def _served(user_id: str, route: str, model_id: str, **fields) -> None:
    get_audit_logger().info(
        "AI request served",
        extra={"audit_data": {"user_id": user_id, "route": route, "model": model_id, **fields}},
    )


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.post("/api/ai/analyze")
async def analyze(
    body: AnalyzeRequest,
    response: Response,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Pipeline: Auth -> Quota -> Rate Limit -> Model Access -> Cache -> Completion"""
    model_id, rate = await _admit(
        services, user_id, "analyze", services.settings.analyze_rate_limit, body.model_name
    )
    result = await services.ai.analyze_content(
        user_id,
        body.content,
        body.section,
        mode=body.mode,
        job_description=body.job_description,
        model_name=model_id,
    )
    response.headers.update(_rate_headers(rate))
    _served(user_id, "analyze", model_id, cached=result.metadata.cached, section=body.section)
    return result.to_json()


@app.post("/api/ai/parse-job")
async def parse_job(
    body: JobParseRequest,
    response: Response,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    model_id, rate = await _admit(
        services, user_id, "parse-job", services.settings.job_parse_rate_limit, body.model_name
    )
    result = await services.ai.parse_job(user_id, body.content, body.target_role, model_name=model_id)
    response.headers.update(_rate_headers(rate))
    _served(user_id, "parse-job", model_id)
    return result.to_json()


@app.post("/api/ai/ats-score")
async def ats_score(
    body: ResumeRequest,
    response: Response,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    model_id, rate = await _admit(
        services, user_id, "ats-score", services.settings.analyze_rate_limit, body.model_name
    )
    result = await services.ai.generate_ats_score(
        user_id, body.resume, body.job_description, model_name=model_id
    )
    response.headers.update(_rate_headers(rate))
    _served(user_id, "ats-score", model_id)
    return result.to_json()


@app.post("/api/ai/suggestions")
async def suggestions(
    body: ResumeRequest,
    response: Response,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    model_id, rate = await _admit(
        services, user_id, "suggestions", services.settings.analyze_rate_limit, body.model_name
    )
    result = await services.ai.generate_suggestions(
        user_id, body.resume, body.job_description, model_name=model_id
    )
    response.headers.update(_rate_headers(rate))
    _served(user_id, "suggestions", model_id)
    return result.to_json()


@app.post("/api/ai/tailor")
async def tailor(
    body: TailorRequest,
    response: Response,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Analyze the job description, then rewrite the resume against it."""
    model_id, rate = await _admit(
        services, user_id, "tailor", services.settings.analyze_rate_limit, body.model_name
    )
    job_analysis = await services.ai.analyze_job_description(user_id, body.job_description, model_name=model_id)
    tailored = await services.ai.tailor_resume(user_id, body.resume, job_analysis, model_name=model_id)
    response.headers.update(_rate_headers(rate))
    _served(user_id, "tailor", model_id, match_score=tailored.match_score)
    return {"jobAnalysis": job_analysis.to_json(), "tailored": tailored.to_json()}


@app.post("/api/ai/completions")
async def completions(
    body: CompletionApiRequest,
    response: Response,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    model_id, rate = await _admit(
        services, user_id, "completions", services.settings.completion_rate_limit, body.model_name
    )
    options = body.options
    request = CompletionRequest(
        prompt=body.prompt,
        temperature=options.temperature,
        max_tokens=options.max_tokens,
        stop_sequences=tuple(options.stop_sequences) if options.stop_sequences else None,
        stream=options.stream,
    )

    if options.stream:
        return _stream_completion(services, request, user_id, model_id, rate)

    result = await services.ai.generate_completion(request, user_id=user_id, model_name=model_id)
    response.headers.update(_rate_headers(rate))
    _served(user_id, "completions", model_id, total_tokens=result.usage.total_tokens)
    return result.to_dict()


def _stream_completion(
    services: Services, request: CompletionRequest, user_id: str, model_id: str, rate: RateLimitResult
) -> StreamingResponse:
    """Relay chunks as SSE events; failures become an error event."""
    logger = get_audit_logger()

    async def event_generator():
        try:
            async with services.ai.generate_streaming_completion(
                request, user_id=user_id, model_name=model_id
            ) as stream:
                async for chunk in stream:
                    if chunk.is_complete:
                        _served(user_id, "completions", model_id, stream=True)
                        yield "data: [DONE]\n\n"
                        return
                    if chunk.text:
                        yield f"data: {json.dumps({'text': chunk.text})}\n\n"
        except AIError as e:
            logger.error(
                "Stream failed",
                extra={"audit_data": {"user_id": user_id, "model": model_id, "code": e.code}},
            )
            yield f"data: {json.dumps({'error': e.message, 'code': e.code})}\n\n"
        except Exception as e:
            logger.error(
                "Stream failed",
                extra={"audit_data": {"user_id": user_id, "model": model_id, "error": str(e)}},
            )
            error = {"error": "Internal server error", "code": ErrorCode.INTERNAL_ERROR.value}
            yield f"data: {json.dumps(error)}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={**_rate_headers(rate), "Cache-Control": "no-cache"},
    )


@app.get("/api/settings")
async def get_user_settings(
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    settings = await services.user_settings.get_user_settings(user_id)
    return settings.to_json()


@app.patch("/api/settings")
async def update_user_settings(
    body: SettingsUpdateRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    updates = body.model_dump(exclude_none=True)
    settings = await services.user_settings.update_settings(user_id, updates)
    return settings.to_json()
