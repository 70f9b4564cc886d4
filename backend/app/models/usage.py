"""Pydantic models for provider requests and usage accounting."""

from datetime import UTC, datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def provider_for_model(model: str) -> str:
    """Derive the billing provider from a model identifier.

    ``vendor/model`` ids (gateway routed) bill to ``vendor``; Sonar models
    bill to Perplexity.
    """
    if "/" in model:
        return model.split("/", 1)[0]
    if model.startswith("sonar"):
        return "perplexity"
    return "unknown"


class ChatRequest(BaseModel):
    """Chat-completions request; provider-specific extras are kept verbatim."""
    model_config = ConfigDict(extra="allow")

    messages: list[dict[str, Any]]
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: Optional[dict[str, Any]] = None
    response_mime_type: Optional[str] = None
    tools: Optional[list[dict[str, Any]]] = None
    tool_choice: Optional[Union[str, dict[str, Any]]] = None


class UsageMetrics(BaseModel):
    """Token usage and cost of one successful provider call. Write-once."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    function_name: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: Optional[float]
    request_id: str
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    execution_time_ms: int = 0
    retry_count: int = 0

    @property
    def provider(self) -> str:
        return provider_for_model(self.model)


class UsageSummaryRow(BaseModel):
    """Aggregated spend for one function/model pair."""
    model_config = ConfigDict(protected_namespaces=())

    function_name: str
    model: str
    provider: str
    calls: int
    input_tokens: int
    output_tokens: int
    cost_usd: float
