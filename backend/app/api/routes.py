"""Operational REST API for the AI Gateway (/api/v1/ prefix)."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from app.database.usage_log import fetch_usage_summary
from app.models.usage import UsageSummaryRow
from app.resilience.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


# ── Response Schemas ──────────────────────────────────────────

class CircuitBreakerStatus(BaseModel):
    name: str
    state: str
    failure_count: int
    success_count: int
    last_failure_time: Optional[float] = None
    retry_after: float = 0.0


class UsageSummaryResponse(BaseModel):
    days: int
    total_cost_usd: float
    total_calls: int
    rows: list[UsageSummaryRow]


def _breakers(request: Request) -> CircuitBreakerRegistry:
    return request.app.state.breakers


# ── Circuit Breaker Endpoints ─────────────────────────────────

@router.get("/circuit-breakers", response_model=list[CircuitBreakerStatus])
async def list_circuit_breakers(request: Request):
    return [CircuitBreakerStatus(**b.stats()) for b in _breakers(request).all()]


@router.post("/circuit-breakers/{name}/reset", response_model=CircuitBreakerStatus)
async def reset_circuit_breaker(name: str, request: Request):
    registry = _breakers(request)
    if not registry.reset(name):
        raise HTTPException(status_code=404, detail=f"Unknown circuit breaker: {name}")
    logger.warning("Circuit breaker %s manually reset", name)
    return CircuitBreakerStatus(**registry.find(name).stats())


# ── Usage / Cost Endpoints ────────────────────────────────────

@router.get("/usage/summary", response_model=UsageSummaryResponse)
async def usage_summary(request: Request, days: int = Query(30, ge=1, le=365)):
    pool = request.app.state.postgres_pool
    if pool is None:
        raise HTTPException(status_code=503, detail="Usage database unavailable")
    rows = await fetch_usage_summary(pool, days=days)
    return UsageSummaryResponse(
        days=days,
        total_cost_usd=sum(r.cost_usd for r in rows),
        total_calls=sum(r.calls for r in rows),
        rows=rows,
    )
