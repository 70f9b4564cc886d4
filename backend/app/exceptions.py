"""AI Gateway exception hierarchy."""

from typing import Optional

from app.models.enums import ErrorCode


class AIGatewayError(Exception):
    """Base exception for all AI Gateway errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class LLMError(AIGatewayError):
    """Classified failure of a provider call.

    ``retryable`` tells the retry policy whether another attempt may succeed;
    ``user_message`` is safe to surface to end users.
    """

    code: ErrorCode = ErrorCode.API_ERROR
    default_status: int = 500
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        user_message: Optional[str] = None,
        retry_after: Optional[float] = None,
        **kw,
    ):
        super().__init__(message, **kw)
        if code is not None:
            self.code = code
        self.status_code = status_code if status_code is not None else self.default_status
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.user_message = user_message or message
        self.retry_after = retry_after


class LLMConfigurationError(LLMError):
    """Provider credential or setting is missing."""

    code = ErrorCode.CONFIGURATION_ERROR


class LLMValidationError(LLMError):
    """Request rejected before any call was attempted (e.g. unknown model)."""

    code = ErrorCode.VALIDATION_ERROR
    default_status = 400


class LLMTimeoutError(LLMError):
    """A single attempt exceeded its deadline and was cancelled."""

    code = ErrorCode.TIMEOUT
    default_status = 408
    default_retryable = True


class LLMAPIError(LLMError):
    """Provider answered with a non-success status or could not be reached."""

    code = ErrorCode.API_ERROR


class CircuitOpenError(LLMError):
    """Circuit breaker is shedding load; the call was never attempted."""

    code = ErrorCode.CIRCUIT_OPEN
    default_status = 503

    def __init__(self, breaker_name: str, retry_after: float, **kw):
        wait = max(1, round(retry_after))
        super().__init__(
            f"Circuit breaker {breaker_name} is OPEN. Try again in {wait}s",
            retry_after=retry_after,
            user_message=f"The AI service is temporarily unavailable. Try again in {wait}s.",
            **kw,
        )
        self.breaker_name = breaker_name


class LLMResponseError(LLMError):
    """LLM returned invalid/unparseable content."""

    code = ErrorCode.INVALID_RESPONSE


def classify_error(error: BaseException) -> LLMError:
    """Map any exception raised by the invocation chain onto the taxonomy."""
    if isinstance(error, LLMError):
        return error
    return LLMAPIError(str(error) or type(error).__name__, retryable=True)
