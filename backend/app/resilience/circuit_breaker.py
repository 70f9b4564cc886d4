"""Per-dependency circuit breaker for LLM API resilience."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from app.exceptions import CircuitOpenError
from app.models.enums import CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Thresholds for one breaker.

    - failure_threshold: consecutive failures while CLOSED -> OPEN
    - success_threshold: consecutive probe successes while HALF_OPEN -> CLOSED
    - open_timeout: seconds spent OPEN before a probe is allowed
    """

    name: str
    failure_threshold: int = 5
    success_threshold: int = 2
    open_timeout: float = 60.0


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker (async-safe with asyncio.Lock).

    The lock guards state bookkeeping only; it is never held while the
    wrapped call is awaited, so concurrent callers are not serialized.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> CircuitState:
        return self._state

    def get_state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.config.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "last_failure_time": self._last_failure_time,
            "retry_after": self._remaining_open_time() if self._state == CircuitState.OPEN else 0.0,
        }

    async def execute(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` through the breaker.

        Raises CircuitOpenError without invoking ``work`` while OPEN.
        Any exception from ``work`` counts as one failure and is re-raised.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                remaining = self._remaining_open_time()
                if remaining > 0:
                    raise CircuitOpenError(self.config.name, retry_after=remaining)
                self._transition(CircuitState.HALF_OPEN)
                self._success_count = 0

        try:
            result = await work()
        except Exception:
            await self.record_failure()
            raise

        await self.record_success()
        return result

    async def record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)
                    self._success_count = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self._last_failure_time = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                self._success_count = 0
            elif self._state == CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.config.failure_threshold:
                    self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker back to CLOSED with zeroed counters."""
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None

    def _remaining_open_time(self) -> float:
        if self._last_failure_time is None:
            return 0.0
        return max(0.0, self.config.open_timeout - (self._clock() - self._last_failure_time))

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker transition name=%s from=%s to=%s failures=%d",
            self.config.name, old_state.value, new_state.value, self._failure_count,
        )


class CircuitBreakerRegistry:
    """One breaker per logical dependency, created on first use."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, config: CircuitBreakerConfig) -> CircuitBreaker:
        breaker = self._breakers.get(config.name)
        if breaker is None:
            breaker = CircuitBreaker(config, clock=self._clock)
            self._breakers[config.name] = breaker
        return breaker

    def find(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def all(self) -> list[CircuitBreaker]:
        return list(self._breakers.values())

    def reset(self, name: str) -> bool:
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True
