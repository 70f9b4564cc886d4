"""Cost calculation from token usage."""

import logging
from typing import Mapping

from app.config import ModelPricing

logger = logging.getLogger(__name__)

TOKENS_PER_PRICING_UNIT = 1_000_000


def calculate_cost(
    pricing_table: Mapping[str, ModelPricing],
    model: str,
    input_tokens: int,
    output_tokens: int,
    default_model: str,
) -> float:
    """Calculate cost in USD for one call, including any per-request fee.

    Models missing from the table are priced as ``default_model``.
    """
    pricing = pricing_table.get(model)
    if pricing is None:
        logger.warning("Unknown pricing for model %s, using %s pricing", model, default_model)
        pricing = pricing_table[default_model]

    input_cost = (input_tokens / TOKENS_PER_PRICING_UNIT) * pricing.input
    output_cost = (output_tokens / TOKENS_PER_PRICING_UNIT) * pricing.output
    return input_cost + output_cost + pricing.per_request
