"""Concurrency-bounded batch processing for bulk AI operations.

Items are processed in consecutive windows of ``concurrency`` items. Each
window runs concurrently and is joined before the next one starts, which
bounds in-flight provider calls without a global worker pool. An optional
delay between windows provides rate limiting.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import (
    TYPE_CHECKING, Any, Awaitable, Callable, Generic, Optional, Protocol, Sequence, TypeVar, Union,
    runtime_checkable,
)

from app.models.usage import ChatRequest, UsageMetrics

if TYPE_CHECKING:
    from app.llm.gateway import InvocationResult, LLMGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 5

ProgressCallback = Callable[[int, int], Union[None, Awaitable[None]]]
BatchCompleteCallback = Callable[[list["BatchResult[Any]"]], Union[None, Awaitable[None]]]


@dataclass
class BatchResult(Generic[R]):
    """Outcome of one item; ``index`` is its position in the input."""
    success: bool
    index: int
    data: Optional[R] = None
    error: Optional[Exception] = None
    metrics: Optional[UsageMetrics] = None


@runtime_checkable
class BatchListener(Protocol):
    """Observer notified after every completed window."""

    def on_progress(self, completed: int, total: int) -> Union[None, Awaitable[None]]: ...

    def on_batch_complete(self, results: list[BatchResult[Any]]) -> Union[None, Awaitable[None]]: ...


@dataclass
class BatchConfig:
    concurrency: int = DEFAULT_CONCURRENCY
    delay_seconds: float = 0.0
    continue_on_error: bool = True
    on_progress: Optional[ProgressCallback] = None
    on_batch_complete: Optional[BatchCompleteCallback] = None
    listeners: list[BatchListener] = field(default_factory=list)


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """Fire a sync or async callback."""
    if callback is None:
        return
    result = callback(*args)
    if asyncio.iscoroutine(result):
        await result


async def batch_process(
    items: Sequence[T],
    processor: Callable[[T, int], Awaitable[R]],
    config: Optional[BatchConfig] = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[BatchResult[R]]:
    """
    Run ``processor(item, index)`` over ``items`` window by window.

    With ``continue_on_error`` failures are captured in the results; without
    it the first failure (by index) of a window is raised once that window
    has finished and the remaining windows are never started.
    """
    config = config or BatchConfig()
    if config.concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {config.concurrency}")

    total = len(items)
    windows = chunk(items, config.concurrency)
    results: list[BatchResult[R]] = []

    async def run_one(item: T, index: int) -> BatchResult[R]:
        try:
            data = await processor(item, index)
        except Exception as e:
            return BatchResult(success=False, index=index, error=e)
        return BatchResult(success=True, index=index, data=data)

    for window_number, window in enumerate(windows):
        offset = window_number * config.concurrency
        window_results = list(await asyncio.gather(
            *(run_one(item, offset + i) for i, item in enumerate(window))
        ))

        failed = [r for r in window_results if not r.success]
        if failed and not config.continue_on_error:
            logger.error(
                "Batch aborted at window=%d/%d index=%d error=%s",
                window_number + 1, len(windows), failed[0].index, failed[0].error,
            )
            raise failed[0].error

        results.extend(window_results)
        logger.info(
            "Batch window=%d/%d done completed=%d/%d failed=%d",
            window_number + 1, len(windows), len(results), total, len(failed),
        )

        await _notify(config.on_progress, len(results), total)
        await _notify(config.on_batch_complete, window_results)
        for listener in config.listeners:
            await _notify(listener.on_progress, len(results), total)
            await _notify(listener.on_batch_complete, window_results)

        if config.delay_seconds > 0 and window_number < len(windows) - 1:
            await sleep(config.delay_seconds)

    return results


async def batch_process_with_rate_limit(
    items: Sequence[T],
    processor: Callable[[T, int], Awaitable[R]],
    requests_per_minute: int,
    config: Optional[BatchConfig] = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[BatchResult[R]]:
    """batch_process with the inter-window delay derived from a request budget."""
    if requests_per_minute < 1:
        raise ValueError(f"requests_per_minute must be >= 1, got {requests_per_minute}")
    config = config or BatchConfig()
    config = replace(config, delay_seconds=60.0 * config.concurrency / requests_per_minute)
    return await batch_process(items, processor, config, sleep=sleep)


async def batch_invoke(
    gateway: "LLMGateway",
    requests: Sequence[ChatRequest],
    function_name: str,
    config: Optional[BatchConfig] = None,
    *,
    user_id: Optional[str] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[BatchResult[Any]]:
    """Run LLMGateway.invoke over many requests; results carry usage metrics."""

    async def invoke(request: ChatRequest, index: int) -> "InvocationResult":
        return await gateway.invoke(request, function_name, user_id=user_id)

    results = await batch_process(requests, invoke, config, sleep=sleep)
    return [
        BatchResult(
            success=True, index=r.index, data=r.data.response, metrics=r.data.metrics,
        ) if r.success else r
        for r in results
    ]
