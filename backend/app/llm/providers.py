"""Chat-completions provider Protocol, OpenAI-compatible transport, and request bodies."""

import asyncio
import logging
from typing import Any, Optional, Protocol, runtime_checkable

import openai
from openai.types.chat import ChatCompletion

from app.config import ProviderConfig
from app.exceptions import LLMAPIError, LLMTimeoutError
from app.models.enums import ErrorCode, ProviderName
from app.models.usage import ChatRequest

logger = logging.getLogger(__name__)

# Parameters the SDK's create() accepts directly; everything else goes in extra_body
_SDK_PARAMS = {
    "model", "messages", "temperature", "max_tokens", "max_completion_tokens",
    "response_format", "tools", "tool_choice",
}


@runtime_checkable
class ChatCompletionProvider(Protocol):
    """Structural interface every chat backend must satisfy."""

    @property
    def provider_name(self) -> str: ...

    async def create_chat_completion(self, body: dict[str, Any]) -> ChatCompletion: ...

    async def close(self) -> None: ...


# ── OpenAICompatibleProvider ───────────────────────────────────

class OpenAICompatibleProvider:
    """Any OpenAI-compatible /chat/completions endpoint (AI gateway, Perplexity)."""

    def __init__(self, config: ProviderConfig, api_key: str) -> None:
        self._config = config
        self._api_key = api_key
        self._client: Optional[openai.AsyncOpenAI] = None
        self._client_lock = asyncio.Lock()

    @property
    def provider_name(self) -> str:
        return self._config.name

    async def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    # Retries and deadlines are owned by the resilience layer
                    self._client = openai.AsyncOpenAI(
                        api_key=self._api_key,
                        base_url=self._config.base_url,
                        max_retries=0,
                        timeout=None,
                    )
        return self._client

    async def create_chat_completion(self, body: dict[str, Any]) -> ChatCompletion:
        client = await self._get_client()
        kwargs = {k: v for k, v in body.items() if k in _SDK_PARAMS}
        extra = {k: v for k, v in body.items() if k not in _SDK_PARAMS}
        if extra:
            kwargs["extra_body"] = extra
        try:
            return await client.chat.completions.create(**kwargs)
        except openai.APIError as exc:
            raise map_provider_error(exc, self._config.name) from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def map_provider_error(exc: openai.APIError, provider: str) -> Exception:
    """Translate an SDK exception into the gateway taxonomy."""
    details = {"provider": provider}
    if isinstance(exc, openai.APITimeoutError):
        return LLMTimeoutError(f"{provider} request timed out", details=details)
    if isinstance(exc, openai.APIConnectionError):
        return LLMAPIError(
            f"{provider} connection error: {exc}",
            retryable=True,
            user_message="The AI service is temporarily unavailable. Please try again.",
            details=details,
        )
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        if status == 429:
            return LLMAPIError(
                "Rate limit exceeded",
                code=ErrorCode.RATE_LIMIT,
                status_code=429,
                retryable=True,
                user_message="Too many requests. Please wait a moment and try again.",
                retry_after=60,
                details=details,
            )
        if status == 402:
            return LLMAPIError(
                "AI credits depleted",
                code=ErrorCode.PAYMENT_REQUIRED,
                status_code=402,
                retryable=False,
                user_message="AI credits depleted. Please add credits to your workspace.",
                details=details,
            )
        if status >= 500:
            return LLMAPIError(
                f"Server error: {exc.message}",
                status_code=status,
                retryable=True,
                user_message="The AI service is temporarily unavailable. Please try again.",
                details=details,
            )
        return LLMAPIError(
            f"{provider} error ({status}): {exc.message}",
            status_code=status,
            retryable=status == 408,
            details=details,
        )
    return LLMAPIError(f"{provider} error: {exc}", retryable=True, details=details)


# ── Request bodies ─────────────────────────────────────────────

def _is_openai_model(model: str) -> bool:
    return "openai" in model or "gpt" in model


def _is_gemini_model(model: str) -> bool:
    return "gemini" in model


def build_request_body(request: ChatRequest, config: ProviderConfig, model: str) -> dict[str, Any]:
    """Shape a request for the provider's parameter conventions."""
    if config.name == ProviderName.PERPLEXITY:
        body = request.model_dump(exclude_none=True)
        body["model"] = model
        body["temperature"] = request.temperature if request.temperature is not None else config.default_temperature
        body["max_tokens"] = request.max_tokens or config.default_max_tokens
        return body

    max_tokens = request.max_tokens or config.default_max_tokens
    body: dict[str, Any] = {"model": model, "messages": request.messages}

    # GPT-5 family only accepts max_completion_tokens and its fixed temperature
    if _is_openai_model(model):
        body["max_completion_tokens"] = max_tokens
    else:
        body["max_tokens"] = max_tokens
        body["temperature"] = request.temperature if request.temperature is not None else config.default_temperature

    if request.response_mime_type:
        if _is_gemini_model(model):
            body["response_mime_type"] = request.response_mime_type
        else:
            body["response_format"] = {"type": "json_object"}
    elif request.response_format:
        if _is_gemini_model(model):
            body["response_mime_type"] = "application/json"
        else:
            body["response_format"] = request.response_format

    if request.tools:
        body["tools"] = request.tools
    if request.tool_choice:
        body["tool_choice"] = request.tool_choice

    extras = request.model_extra or {}
    for key, value in extras.items():
        body.setdefault(key, value)
    return body
