"""Shared fixtures and fakes for AI Gateway tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from app.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_completion(
    *,
    request_id: str = "chatcmpl-123",
    content: str = "hello",
    prompt_tokens: int = 100,
    completion_tokens: int = 50,
) -> SimpleNamespace:
    """Object shaped like openai's ChatCompletion for the fields the gateway reads."""
    return SimpleNamespace(
        id=request_id,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=None))],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


class FakeProvider:
    """ChatCompletionProvider whose outcomes are scripted per call.

    Each entry of ``outcomes`` is either a response object or an exception
    instance to raise. The last entry repeats once the script is exhausted.
    """

    provider_name = "fake"

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes) or [make_completion()]
        self.bodies: list[dict[str, Any]] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.bodies)

    async def create_chat_completion(self, body: dict[str, Any]) -> Any:
        self.bodies.append(body)
        index = min(len(self.bodies), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(
        CircuitBreakerConfig(name="test", failure_threshold=3, success_threshold=2, open_timeout=30.0),
        clock=clock,
    )
