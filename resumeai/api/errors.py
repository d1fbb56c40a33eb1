"""Error shape for the HTTP API and the exception handlers that produce it.

Every error response body is ``{"error": str, "code": str, "details"?: ...}``;
rate and usage limit responses also carry ``retryAfter``.
"""

import logging
from enum import Enum

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from resumeai.providers.errors import AIError, ModelNotFoundError, StreamingNotSupportedError
from resumeai.security.ratelimit import RateLimitExceededError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """An error with a fixed HTTP status and client-facing code."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details=None,
        headers: dict[str, str] | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        self.headers = headers or {}
        self.retry_after = retry_after


def error_body(message: str, code: ErrorCode, details=None, retry_after: int | None = None) -> dict:
    body = {"error": message, "code": code.value}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    if retry_after is not None:
        body["retryAfter"] = retry_after
    return body


def error_response(
    status_code: int,
    code: ErrorCode,
    message: str,
    details=None,
    headers: dict[str, str] | None = None,
    retry_after: int | None = None,
) -> JSONResponse:
    headers = dict(headers or {})
    if retry_after is not None:
        headers.setdefault("Retry-After", str(retry_after))
    return JSONResponse(
        status_code=status_code,
        content=error_body(message, code, details, retry_after),
        headers=headers,
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        exc.status_code, exc.code, exc.message, exc.details, exc.headers, exc.retry_after
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are 400, not FastAPI's default 422."""
    errors = [{k: v for k, v in e.items() if k in ("loc", "msg", "type")} for e in exc.errors()]
    logger.warning("Invalid request format", extra={"audit_data": {"errors": errors}})
    return error_response(
        status.HTTP_400_BAD_REQUEST, ErrorCode.VALIDATION_ERROR, "Invalid request", details=errors
    )


async def pydantic_validation_error_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    logger.warning("Settings validation failed", extra={"audit_data": {"errors": errors}})
    return error_response(
        status.HTTP_400_BAD_REQUEST, ErrorCode.VALIDATION_ERROR, "Validation failed", details=errors
    )


async def rate_limit_error_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        ErrorCode.RATE_LIMIT_EXCEEDED,
        str(exc),
        retry_after=exc.retry_after,
    )


async def ai_error_handler(request: Request, exc: AIError) -> JSONResponse:
    if isinstance(exc, ModelNotFoundError):
        return error_response(status.HTTP_403_FORBIDDEN, ErrorCode.MODEL_NOT_AVAILABLE, exc.message)
    if isinstance(exc, StreamingNotSupportedError):
        return error_response(status.HTTP_400_BAD_REQUEST, ErrorCode.VALIDATION_ERROR, exc.message)

    logger.error(
        "AI request failed",
        extra={"audit_data": {"provider": exc.provider, "provider_code": exc.code, "error": exc.message}},
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR,
        "AI request failed",
        details={"provider": exc.provider, "providerCode": exc.code},
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", extra={"audit_data": {"path": request.url.path}}, exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_ERROR, "Internal server error"
    )


def register_error_handlers(app: FastAPI) -> None:
    for exc_class, handler in (
        (ApiError, api_error_handler),
        (RequestValidationError, request_validation_error_handler),
        (PydanticValidationError, pydantic_validation_error_handler),
        (RateLimitExceededError, rate_limit_error_handler),
        (AIError, ai_error_handler),
        (Exception, generic_error_handler),
    ):
        app.add_exception_handler(exc_class, handler)
