"""Unit tests for the per-attempt timeout guard."""

from __future__ import annotations

import asyncio

import pytest

from app.exceptions import LLMTimeoutError
from app.resilience.retry import is_transient
from app.resilience.timeout import DEFAULT_TIMEOUT_SECONDS, with_timeout

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_returns_result_within_deadline() -> None:
    async def quick() -> str:
        return "fast"

    assert await with_timeout(quick, timeout=1.0) == "fast"


@pytest.mark.asyncio
async def test_raises_retryable_timeout_error() -> None:
    async def slow() -> None:
        await asyncio.sleep(10)

    with pytest.raises(LLMTimeoutError, match="timed out after 0.01s") as exc_info:
        await with_timeout(slow, timeout=0.01)

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 408
    assert is_transient(exc_info.value)


@pytest.mark.asyncio
async def test_cancels_in_flight_operation() -> None:
    cancelled = asyncio.Event()

    async def hanging_request() -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(LLMTimeoutError):
        await with_timeout(hanging_request, timeout=0.01)

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_other_errors_pass_through() -> None:
    async def broken() -> None:
        raise ValueError("not a timeout")

    with pytest.raises(ValueError, match="not a timeout"):
        await with_timeout(broken, timeout=1.0)


@pytest.mark.asyncio
async def test_timeout_error_from_work_is_not_reported_as_deadline() -> None:
    socket_timeout = TimeoutError("read timed out")

    async def fails_fast() -> None:
        raise socket_timeout

    with pytest.raises(TimeoutError) as exc_info:
        await with_timeout(fails_fast, timeout=10)

    assert exc_info.value is socket_timeout
    assert not isinstance(exc_info.value, LLMTimeoutError)


def test_default_deadline_is_45_seconds() -> None:
    assert DEFAULT_TIMEOUT_SECONDS == 45.0
