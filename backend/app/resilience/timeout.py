"""Per-attempt deadline that cancels the in-flight call."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from app.exceptions import LLMTimeoutError

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 45.0


async def with_timeout(
    work: Callable[[], Awaitable[T]],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> T:
    """Run one attempt of ``work`` under a deadline.

    On expiry the attempt is cancelled, which aborts the underlying HTTP
    request and releases its connection. A ``TimeoutError`` raised by
    ``work`` itself before the deadline propagates unchanged.
    """
    deadline = asyncio.timeout(timeout)
    try:
        async with deadline:
            return await work()
    except TimeoutError as exc:
        if not deadline.expired():
            raise
        raise LLMTimeoutError(
            f"Request timed out after {timeout:g}s",
            user_message=f"AI request took longer than {timeout:g}s",
        ) from exc
