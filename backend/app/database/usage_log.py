"""UsageLogger: append-only cost log in the ai_usage_metrics table.

Rows are inserted once per successful provider call and never updated or
deleted from this layer. Storage failures are logged and swallowed so a
successful AI call is never turned into a failure by bookkeeping.
"""

import logging
from datetime import UTC, datetime, timedelta

from app.models.usage import UsageMetrics, UsageSummaryRow

logger = logging.getLogger(__name__)

_INSERT_USAGE_SQL = """
    INSERT INTO ai_usage_metrics
        (function_name, provider, model, input_tokens, output_tokens,
         cost_usd, request_id, user_id, execution_time_ms, retry_count, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
"""

_SUMMARY_SQL = """
    SELECT function_name, model, provider,
           COUNT(*) AS calls,
           COALESCE(SUM(input_tokens), 0) AS input_tokens,
           COALESCE(SUM(output_tokens), 0) AS output_tokens,
           COALESCE(SUM(cost_usd), 0) AS cost_usd
    FROM ai_usage_metrics
    WHERE created_at >= $1
    GROUP BY function_name, model, provider
    ORDER BY cost_usd DESC
"""


class UsageLogger:
    """Persists UsageMetrics records through an asyncpg pool."""

    def __init__(self, postgres_pool) -> None:
        self._pool = postgres_pool

    async def log(self, metrics: UsageMetrics) -> bool:
        """Append one usage row. Returns False when nothing was written; never raises."""
        if metrics.cost_usd is None:
            logger.warning(
                "Skipping usage log without cost function=%s model=%s request_id=%s",
                metrics.function_name, metrics.model, metrics.request_id,
            )
            return False

        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    _INSERT_USAGE_SQL,
                    metrics.function_name,
                    metrics.provider,
                    metrics.model,
                    metrics.input_tokens,
                    metrics.output_tokens,
                    metrics.cost_usd,
                    metrics.request_id,
                    metrics.user_id,
                    metrics.execution_time_ms,
                    metrics.retry_count,
                    metrics.created_at,
                )
        except Exception:
            logger.exception(
                "Failed to log AI usage function=%s request_id=%s",
                metrics.function_name, metrics.request_id,
            )
            return False

        logger.debug(
            "Logged AI usage function=%s model=%s cost_usd=%.6f",
            metrics.function_name, metrics.model, metrics.cost_usd,
        )
        return True


async def fetch_usage_summary(postgres_pool, days: int = 30) -> list[UsageSummaryRow]:
    """Spend per function/model over the trailing ``days``."""
    since = datetime.now(UTC) - timedelta(days=days)
    async with postgres_pool.acquire() as conn:
        rows = await conn.fetch(_SUMMARY_SQL, since)
    return [
        UsageSummaryRow(
            function_name=r["function_name"],
            model=r["model"],
            provider=r["provider"],
            calls=int(r["calls"]),
            input_tokens=int(r["input_tokens"]),
            output_tokens=int(r["output_tokens"]),
            cost_usd=float(r["cost_usd"]),
        )
        for r in rows
    ]
