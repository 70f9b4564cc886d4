"""Unit tests for CircuitBreaker and CircuitBreakerRegistry.

Covers:
- CLOSED -> OPEN after failure_threshold consecutive failures
- Fail-fast while OPEN (wrapped call never invoked)
- OPEN -> HALF_OPEN probe after open_timeout
- HALF_OPEN -> CLOSED after success_threshold successes, -> OPEN on one failure
- Interleaved concurrent calls against one breaker
"""

from __future__ import annotations

import asyncio

import pytest

from app.exceptions import CircuitOpenError, LLMTimeoutError
from app.models.enums import CircuitState
from app.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)

pytestmark = pytest.mark.unit


class Boom(Exception):
    pass


class CountingWork:
    """Zero-arg coroutine function that counts invocations."""

    def __init__(self, fail: bool = False, result: str = "ok") -> None:
        self.fail = fail
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise Boom("upstream down")
        return self.result


async def _fail_times(breaker: CircuitBreaker, n: int) -> None:
    work = CountingWork(fail=True)
    for _ in range(n):
        with pytest.raises(Boom):
            await breaker.execute(work)


# ---------------------------------------------------------------------------
# CLOSED behaviour
# ---------------------------------------------------------------------------


class TestClosed:
    @pytest.mark.asyncio
    async def test_starts_closed_and_passes_result_through(self, breaker: CircuitBreaker) -> None:
        work = CountingWork(result="value")
        assert breaker.get_state() == CircuitState.CLOSED
        assert await breaker.execute(work) == "value"
        assert work.calls == 1

    @pytest.mark.asyncio
    async def test_opens_after_exactly_failure_threshold_failures(self, breaker: CircuitBreaker) -> None:
        await _fail_times(breaker, 2)
        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.failure_count == 2

        await _fail_times(breaker, 1)
        assert breaker.get_state() == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker: CircuitBreaker) -> None:
        await _fail_times(breaker, 2)
        await breaker.execute(CountingWork())
        assert breaker.failure_count == 0

        await _fail_times(breaker, 2)
        assert breaker.get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_timeouts_count_as_failures(self, breaker: CircuitBreaker) -> None:
        async def timing_out() -> None:
            raise LLMTimeoutError("Request timed out after 45s")

        for _ in range(3):
            with pytest.raises(LLMTimeoutError):
                await breaker.execute(timing_out)
        assert breaker.get_state() == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_original_exception_is_reraised(self, breaker: CircuitBreaker) -> None:
        async def failing() -> None:
            raise ValueError("specific")

        with pytest.raises(ValueError, match="specific"):
            await breaker.execute(failing)


# ---------------------------------------------------------------------------
# OPEN behaviour
# ---------------------------------------------------------------------------


class TestOpen:
    @pytest.mark.asyncio
    async def test_rejects_without_invoking_work(self, breaker: CircuitBreaker, clock) -> None:
        await _fail_times(breaker, 3)
        work = CountingWork()

        clock.advance(10)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(work)

        assert work.calls == 0
        assert exc_info.value.retry_after == pytest.approx(20.0)
        assert "Try again in 20s" in str(exc_info.value)
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_rejects_until_just_before_timeout(self, breaker: CircuitBreaker, clock) -> None:
        await _fail_times(breaker, 3)
        work = CountingWork()

        clock.advance(29.9)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(work)
        assert work.calls == 0

    @pytest.mark.asyncio
    async def test_probe_after_timeout_moves_to_half_open(self, breaker: CircuitBreaker, clock) -> None:
        await _fail_times(breaker, 3)
        clock.advance(30)

        work = CountingWork()
        assert await breaker.execute(work) == "ok"
        assert work.calls == 1
        assert breaker.get_state() == CircuitState.HALF_OPEN
        assert breaker.success_count == 1


# ---------------------------------------------------------------------------
# HALF_OPEN behaviour
# ---------------------------------------------------------------------------


class TestHalfOpen:
    @pytest.mark.asyncio
    async def test_closes_after_success_threshold(self, breaker: CircuitBreaker, clock) -> None:
        await _fail_times(breaker, 3)
        clock.advance(30)

        await breaker.execute(CountingWork())
        await breaker.execute(CountingWork())

        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.success_count == 0

    @pytest.mark.asyncio
    async def test_single_failure_reopens_regardless_of_prior_successes(self) -> None:
        clock_value = [0.0]
        breaker = CircuitBreaker(
            CircuitBreakerConfig(name="probe", failure_threshold=1, success_threshold=5, open_timeout=10.0),
            clock=lambda: clock_value[0],
        )
        await _fail_times(breaker, 1)
        clock_value[0] = 10.0

        for _ in range(4):
            await breaker.execute(CountingWork())
        assert breaker.get_state() == CircuitState.HALF_OPEN
        assert breaker.success_count == 4

        await _fail_times(breaker, 1)
        assert breaker.get_state() == CircuitState.OPEN
        assert breaker.success_count == 0

        work = CountingWork()
        with pytest.raises(CircuitOpenError):
            await breaker.execute(work)
        assert work.calls == 0

    @pytest.mark.asyncio
    async def test_probe_failure_restarts_open_timeout(self, breaker: CircuitBreaker, clock) -> None:
        await _fail_times(breaker, 3)
        clock.advance(30)
        await _fail_times(breaker, 1)

        clock.advance(15)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(CountingWork())
        assert exc_info.value.retry_after == pytest.approx(15.0)


# ---------------------------------------------------------------------------
# Observability and reset
# ---------------------------------------------------------------------------


class TestObservability:
    @pytest.mark.asyncio
    async def test_stats_reflect_state(self, breaker: CircuitBreaker, clock) -> None:
        await _fail_times(breaker, 3)
        clock.advance(5)

        stats = breaker.stats()
        assert stats["name"] == "test"
        assert stats["state"] == "open"
        assert stats["failure_count"] == 3
        assert stats["retry_after"] == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_reset_closes_and_zeroes_counters(self, breaker: CircuitBreaker) -> None:
        await _fail_times(breaker, 3)
        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        work = CountingWork()
        await breaker.execute(work)
        assert work.calls == 1


# ---------------------------------------------------------------------------
# Interleavings
# ---------------------------------------------------------------------------


class TestInterleaving:
    @pytest.mark.asyncio
    async def test_concurrent_failures_counted_once_each(self, breaker: CircuitBreaker) -> None:
        async def slow_fail(delay: float) -> None:
            await asyncio.sleep(delay)
            raise Boom("late")

        results = await asyncio.gather(
            *(breaker.execute(lambda d=d: slow_fail(d)) for d in (0.02, 0.01, 0.0)),
            return_exceptions=True,
        )

        assert all(isinstance(r, Boom) for r in results)
        assert breaker.get_state() == CircuitState.OPEN
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_success_completing_between_failures_resets_count(self, breaker: CircuitBreaker) -> None:
        order: list[str] = []

        async def fail_after(delay: float) -> None:
            await asyncio.sleep(delay)
            order.append("fail")
            raise Boom("x")

        async def succeed_after(delay: float) -> str:
            await asyncio.sleep(delay)
            order.append("ok")
            return "ok"

        # Completion order: fail, fail, ok, fail
        await asyncio.gather(
            breaker.execute(lambda: fail_after(0.0)),
            breaker.execute(lambda: fail_after(0.01)),
            breaker.execute(lambda: succeed_after(0.02)),
            breaker.execute(lambda: fail_after(0.03)),
            return_exceptions=True,
        )

        assert order == ["fail", "fail", "ok", "fail"]
        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_calls_run_concurrently_through_breaker(self, breaker: CircuitBreaker) -> None:
        in_flight = 0
        peak = 0

        async def work() -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        await asyncio.gather(*(breaker.execute(work) for _ in range(4)))
        assert peak == 4


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_get_returns_same_breaker_per_name(self) -> None:
        registry = CircuitBreakerRegistry()
        a = registry.get(CircuitBreakerConfig(name="LovableAI"))
        b = registry.get(CircuitBreakerConfig(name="LovableAI"))
        c = registry.get(CircuitBreakerConfig(name="Perplexity"))

        assert a is b
        assert a is not c
        assert [br.name for br in registry.all()] == ["LovableAI", "Perplexity"]

    @pytest.mark.asyncio
    async def test_breakers_track_health_independently(self) -> None:
        registry = CircuitBreakerRegistry()
        gateway = registry.get(CircuitBreakerConfig(name="gw", failure_threshold=1))
        research = registry.get(CircuitBreakerConfig(name="research", failure_threshold=1))

        await _fail_times(gateway, 1)

        assert gateway.state == CircuitState.OPEN
        assert research.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset_by_name(self) -> None:
        registry = CircuitBreakerRegistry()
        br = registry.get(CircuitBreakerConfig(name="gw", failure_threshold=1))
        await _fail_times(br, 1)

        assert registry.reset("gw") is True
        assert br.state == CircuitState.CLOSED
        assert registry.reset("missing") is False
