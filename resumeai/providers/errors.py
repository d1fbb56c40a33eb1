"""Error taxonomy shared by every LLM provider adapter.

Vendor-specific status codes and error payloads are translated into these
classes so callers never need to know which vendor served a request.
Only errors marked ``retryable`` are retried by the adapter.
"""


class AIError(Exception):
    """Base class for all AI layer failures."""

    code = "AI_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        provider: str = "unknown",
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.provider = provider
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.provider}] {self.code}: {self.message}"


class ConfigurationError(AIError):
    """Missing credentials or an adapter used before initialization."""

    code = "CONFIGURATION_ERROR"


class ModelNotFoundError(ConfigurationError):
    code = "MODEL_NOT_FOUND"


class InitializationError(AIError):
    code = "INITIALIZATION_FAILED"


class EmptyResponseError(AIError):
    code = "EMPTY_RESPONSE"


class InvalidRequestError(AIError):
    code = "INVALID_REQUEST"


class AuthenticationError(AIError):
    code = "AUTHENTICATION_ERROR"


class InsufficientBalanceError(AIError):
    code = "INSUFFICIENT_BALANCE"


class ProviderRateLimitError(AIError):
    code = "RATE_LIMIT_EXCEEDED"
    retryable = True


class ServerError(AIError):
    code = "SERVER_ERROR"
    retryable = True


class ServerOverloadedError(AIError):
    code = "SERVER_OVERLOADED"
    retryable = True


class ProviderConnectionError(AIError):
    """Network failure or timeout talking to the vendor."""

    code = "CONNECTION_ERROR"
    retryable = True


class StreamingNotSupportedError(AIError):
    code = "STREAMING_NOT_SUPPORTED"


class StreamTimeoutError(AIError):
    code = "STREAM_TIMEOUT"


class InvalidResponseError(AIError):
    """Model output could not be parsed or failed schema validation."""

    code = "INVALID_RESPONSE"


class RetryExhaustedError(AIError):
    """All attempts failed; ``last_error`` is the final underlying failure."""

    code = "RETRY_EXHAUSTED"

    def __init__(self, attempts: int, last_error: AIError):
        super().__init__(
            f"Operation failed after {attempts} attempts: {last_error.message}",
            provider=last_error.provider,
            details={"attempts": attempts, "last_code": last_error.code},
        )
        self.attempts = attempts
        self.last_error = last_error


_STATUS_ERRORS: dict[int, tuple[type[AIError], str]] = {
    400: (InvalidRequestError, "Invalid request format"),
    401: (AuthenticationError, "Invalid API key"),
    402: (InsufficientBalanceError, "Insufficient account balance"),
    403: (AuthenticationError, "Access denied"),
    404: (InvalidRequestError, "Model or endpoint not found"),
    422: (InvalidRequestError, "Invalid request parameters"),
    429: (ProviderRateLimitError, "Rate limit reached"),
    500: (ServerError, "Server error"),
    502: (ServerError, "Bad gateway"),
    503: (ServerOverloadedError, "Server overloaded"),
    504: (ServerOverloadedError, "Gateway timeout"),
    529: (ServerOverloadedError, "Server overloaded"),
}


def error_from_status(status_code: int, provider: str, detail: str = "") -> AIError:
    """Build the taxonomy error for a non-2xx vendor response."""
    if status_code in _STATUS_ERRORS:
        error_cls, message = _STATUS_ERRORS[status_code]
    elif status_code >= 500:
        error_cls, message = ServerError, "Server error"
    else:
        error_cls, message = InvalidRequestError, "Request rejected"

    details = {"status_code": status_code}
    if detail:
        details["body"] = detail[:500]
    return error_cls(f"{provider} {message.lower()}", provider=provider, details=details)
