"""Retry with exponential backoff for provider calls."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from app.exceptions import LLMError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ── Transient error detection ──────────────────────────────────
_TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

RetryCallback = Callable[[int, Exception], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff curve for one provider."""

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0


@dataclass
class RetryContext:
    """State of the retry about to happen."""
    attempt: int
    error: Exception
    delay: float


def calculate_backoff(attempt: int, base_delay: float = 1.0, multiplier: float = 2.0) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based)."""
    return base_delay * multiplier ** (attempt - 1)


def is_transient(error: BaseException) -> bool:
    """Check if an error is transient and worth retrying."""
    if isinstance(error, LLMError):
        return error.retryable
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if isinstance(status, int) and status in _TRANSIENT_STATUS_CODES:
        return True
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return True
    return False


async def retry_with_backoff(
    work: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    on_retry: Optional[RetryCallback] = None,
    *,
    base_delay: float = 1.0,
    multiplier: float = 2.0,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Invoke ``work`` up to ``1 + max_retries`` times.

    Before each retry: sleep for the backoff delay, then report the attempt
    through ``on_retry(attempt, error)``. Errors rejected by ``is_retryable``
    propagate immediately. When the budget is spent the last error is
    re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return await work()
        except Exception as e:
            if is_retryable is not None and not is_retryable(e):
                raise
            if attempt >= max_retries:
                raise

            attempt += 1
            ctx = RetryContext(
                attempt=attempt,
                error=e,
                delay=calculate_backoff(attempt, base_delay, multiplier),
            )
            logger.debug(
                "Retrying attempt=%d/%d delay=%.2fs error=%s",
                ctx.attempt, max_retries, ctx.delay, e,
            )
            await sleep(ctx.delay)
            if on_retry is not None:
                result = on_retry(ctx.attempt, e)
                if asyncio.iscoroutine(result):
                    await result
