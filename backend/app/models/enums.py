"""Shared enums for the AI Gateway."""

from enum import StrEnum


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ErrorCode(StrEnum):
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    API_ERROR = "API_ERROR"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    INVALID_RESPONSE = "INVALID_RESPONSE"


class ProviderName(StrEnum):
    AI_GATEWAY = "ai_gateway"
    PERPLEXITY = "perplexity"
