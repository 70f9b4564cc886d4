"""LLMGateway: the single entry point for chat-completion calls.

Every call runs through: circuit breaker -> retry with backoff -> per-attempt
timeout -> provider. Successful calls are priced and produce a UsageMetrics
record; failures are classified, logged and re-raised.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from openai.types.chat import ChatCompletion

from app.config import PROVIDERS, ProviderConfig, Settings
from app.database.usage_log import UsageLogger
from app.exceptions import LLMConfigurationError, LLMResponseError, LLMValidationError, classify_error
from app.llm.pricing import calculate_cost
from app.llm.providers import ChatCompletionProvider, OpenAICompatibleProvider, build_request_body
from app.llm.text import extract_tool_call_json, parse_json_response
from app.models.usage import ChatRequest, UsageMetrics
from app.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from app.resilience.retry import is_transient, retry_with_backoff
from app.resilience.timeout import with_timeout

logger = logging.getLogger(__name__)


@dataclass
class InvocationResult:
    """Raw provider response plus the usage record of the call."""
    response: ChatCompletion
    metrics: UsageMetrics

    @property
    def content(self) -> str:
        """Text of the first choice; empty for tool-call-only replies."""
        if not self.response.choices:
            raise LLMResponseError("Response contains no choices")
        return self.response.choices[0].message.content or ""

    def json(self) -> Any:
        return parse_json_response(self.content)

    def tool_call_json(self) -> dict[str, Any]:
        return extract_tool_call_json(self.response)


def validate_model(model: str, allowed: tuple[str, ...]) -> None:
    """Reject model identifiers outside the provider's allow-list."""
    if model not in allowed:
        raise LLMValidationError(
            f"Invalid model: {model}. Must use one of: {', '.join(allowed)}",
            details={"model": model},
        )


class LLMGateway:
    """Resilient, cost-metered access to one chat-completions provider."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        api_key: Optional[str],
        breaker: CircuitBreaker,
        provider: Optional[ChatCompletionProvider] = None,
        usage_logger: Optional[UsageLogger] = None,
        default_timeout: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self.config = config
        self.breaker = breaker
        self._api_key = api_key
        self._provider = provider
        self._usage_logger = usage_logger
        self._default_timeout = config.timeout_seconds if default_timeout is None else default_timeout
        self._sleep = sleep

    @property
    def provider(self) -> ChatCompletionProvider:
        if self._provider is None:
            self._provider = OpenAICompatibleProvider(self.config, self._api_key)
        return self._provider

    async def invoke(
        self,
        request: ChatRequest,
        function_name: str,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> InvocationResult:
        if not self._api_key:
            raise LLMConfigurationError(
                f"{self.config.api_key_env} not configured",
                details={"provider": self.config.name},
            )

        model = request.model or self.config.default_model
        validate_model(model, self.config.models)

        if timeout is None:
            timeout = self._default_timeout
        body = build_request_body(request, self.config, model)
        policy = self.config.retry
        start = time.monotonic()
        retry_count = 0

        def on_retry(attempt: int, error: Exception) -> None:
            nonlocal retry_count
            retry_count = attempt
            logger.warning(
                "[%s] Retry %d/%d: %s", function_name, attempt, policy.max_retries, error,
            )

        async def attempt() -> ChatCompletion:
            logger.info(
                "[%s] Calling %s model=%s timeout=%gs",
                function_name, self.config.name, model, timeout,
            )
            return await with_timeout(lambda: self.provider.create_chat_completion(body), timeout)

        retry_kwargs: dict[str, Any] = {
            "base_delay": policy.base_delay,
            "multiplier": policy.multiplier,
            "is_retryable": is_transient,
        }
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep

        try:
            response = await self.breaker.execute(
                lambda: retry_with_backoff(attempt, policy.max_retries, on_retry, **retry_kwargs)
            )
        except Exception as exc:
            error = classify_error(exc)
            logger.error(
                "[%s] Failed after %dms error=%s message=%s retries=%d",
                function_name, int((time.monotonic() - start) * 1000),
                error.code.value, error, retry_count,
            )
            if error is exc:
                raise
            raise error from exc

        execution_time_ms = int((time.monotonic() - start) * 1000)
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        cost = calculate_cost(
            self.config.pricing, model, input_tokens, output_tokens, self.config.default_model,
        )

        metrics = UsageMetrics(
            function_name=function_name,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            request_id=response.id,
            user_id=user_id,
            execution_time_ms=execution_time_ms,
            retry_count=retry_count,
        )

        logger.info(
            "[%s] Success tokens_in=%d tokens_out=%d cost_usd=%.6f time_ms=%d retries=%d",
            function_name, input_tokens, output_tokens, cost, execution_time_ms, retry_count,
        )

        if self._usage_logger is not None:
            await self._usage_logger.log(metrics)

        return InvocationResult(response=response, metrics=metrics)

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()


def build_gateways(
    settings: Settings,
    breakers: CircuitBreakerRegistry,
    usage_logger: Optional[UsageLogger] = None,
) -> dict[str, LLMGateway]:
    """One gateway per configured provider, each behind its own breaker."""
    return {
        name: LLMGateway(
            config,
            api_key=settings.api_key_for(config),
            breaker=breakers.get(config.breaker_config),
            usage_logger=usage_logger,
            default_timeout=settings.timeout_override,
        )
        for name, config in PROVIDERS.items()
    }
