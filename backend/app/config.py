"""Provider configuration: allow-lists, pricing, resilience settings, env."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from app.models.enums import ProviderName
from app.resilience.circuit_breaker import CircuitBreakerConfig
from app.resilience.retry import RetryPolicy
from app.resilience.timeout import DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ModelPricing:
    """USD per 1M tokens, plus an optional flat fee per request."""

    input: float
    output: float
    per_request: float = 0.0


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable configuration for one chat-completions provider."""

    name: str
    base_url: str
    api_key_env: str
    models: tuple[str, ...]
    default_model: str
    pricing: dict[str, ModelPricing]
    default_temperature: float
    default_max_tokens: int = 4000
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    breaker: Optional[CircuitBreakerConfig] = None

    @property
    def breaker_config(self) -> CircuitBreakerConfig:
        return self.breaker or CircuitBreakerConfig(name=self.name)


def _allowed_models(named: dict[str, str], pricing: dict[str, ModelPricing]) -> tuple[str, ...]:
    """Named models first, then any other priced model, without duplicates."""
    return tuple(dict.fromkeys([*named.values(), *pricing]))


# ── AI gateway (OpenAI + Gemini models) ────────────────────────

AI_GATEWAY_MODELS: dict[str, str] = {
    "DEFAULT": "google/gemini-2.5-flash",
    "PREMIUM": "openai/gpt-5",
    "ADVANCED": "openai/gpt-5.2",
    "FAST": "google/gemini-2.5-flash-lite",
    "IMAGE": "google/gemini-2.5-flash-image",
    "MINI": "openai/gpt-5-mini",
}

AI_GATEWAY_PRICING: dict[str, ModelPricing] = {
    "google/gemini-2.5-flash": ModelPricing(input=0.30, output=2.50),
    "google/gemini-3-pro-preview": ModelPricing(input=2.50, output=10.00),
    "google/gemini-2.5-flash-lite": ModelPricing(input=0.10, output=0.80),
    "openai/gpt-5": ModelPricing(input=10.00, output=30.00),
    "openai/gpt-5.2": ModelPricing(input=15.00, output=45.00),
    "openai/gpt-5-mini": ModelPricing(input=1.50, output=6.00),
    "openai/gpt-5-nano": ModelPricing(input=0.50, output=2.00),
}

AI_GATEWAY = ProviderConfig(
    name=ProviderName.AI_GATEWAY,
    base_url="https://ai.gateway.lovable.dev/v1",
    api_key_env="AI_GATEWAY_API_KEY",
    models=_allowed_models(AI_GATEWAY_MODELS, AI_GATEWAY_PRICING),
    default_model=AI_GATEWAY_MODELS["DEFAULT"],
    pricing=AI_GATEWAY_PRICING,
    default_temperature=0.3,
    breaker=CircuitBreakerConfig(
        name="LovableAI",
        failure_threshold=5,
        success_threshold=2,
        open_timeout=300.0,
    ),
)

# ── Perplexity (web search / research) ─────────────────────────

PERPLEXITY_MODELS: dict[str, str] = {
    "DEFAULT": "sonar-pro",
    "SMALL": "sonar",
    "HUGE": "sonar-reasoning-pro",
    "RESEARCH": "sonar-deep-research",
}

PERPLEXITY_PRICING: dict[str, ModelPricing] = {
    "sonar": ModelPricing(input=1.0, output=1.0, per_request=0.005),
    "sonar-pro": ModelPricing(input=3.0, output=15.0, per_request=0.005),
    "sonar-reasoning-pro": ModelPricing(input=2.0, output=8.0, per_request=0.005),
    "sonar-deep-research": ModelPricing(input=10.0, output=10.0, per_request=0.005),
}

PERPLEXITY = ProviderConfig(
    name=ProviderName.PERPLEXITY,
    base_url="https://api.perplexity.ai",
    api_key_env="PERPLEXITY_API_KEY",
    models=_allowed_models(PERPLEXITY_MODELS, PERPLEXITY_PRICING),
    default_model=PERPLEXITY_MODELS["DEFAULT"],
    pricing=PERPLEXITY_PRICING,
    default_temperature=0.2,
    breaker=CircuitBreakerConfig(
        name="Perplexity",
        failure_threshold=5,
        success_threshold=2,
        open_timeout=60.0,
    ),
)

PROVIDERS: dict[str, ProviderConfig] = {
    AI_GATEWAY.name: AI_GATEWAY,
    PERPLEXITY.name: PERPLEXITY,
}

# Alternate env names accepted for provider keys
_KEY_ALIASES: dict[str, tuple[str, ...]] = {
    "AI_GATEWAY_API_KEY": ("LOVABLE_API_KEY",),
}


@dataclass(frozen=True)
class Settings:
    """Process settings read from the environment (.env supported)."""

    api_keys: dict[str, str]
    database_url: Optional[str] = None
    log_level: str = "INFO"
    timeout_override: Optional[float] = None

    def api_key_for(self, provider: ProviderConfig) -> Optional[str]:
        return self.api_keys.get(provider.name)


def load_settings() -> Settings:
    load_dotenv()
    api_keys: dict[str, str] = {}
    for provider in PROVIDERS.values():
        for env_name in (provider.api_key_env, *_KEY_ALIASES.get(provider.api_key_env, ())):
            value = os.environ.get(env_name)
            if value:
                api_keys[provider.name] = value
                break

    timeout = os.environ.get("LLM_TIMEOUT_SECONDS")
    return Settings(
        api_keys=api_keys,
        database_url=os.environ.get("EXTERNAL_DATABASE_URL") or os.environ.get("DATABASE_URL"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        timeout_override=float(timeout) if timeout else None,
    )
