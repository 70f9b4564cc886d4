"""AI Gateway: FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import router as api_router
from app.config import load_settings
from app.database.db import create_postgres_pool
from app.database.usage_log import UsageLogger
from app.llm.gateway import build_gateways
from app.logging_config import setup_logging
from app.resilience.circuit_breaker import CircuitBreakerRegistry

settings = load_settings()
setup_logging(log_level=settings.log_level, log_file="ai_gateway.log")

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: DB pool, breakers and gateways. Shutdown: close clients."""
    logger.info("Starting AI Gateway...")

    postgres_pool = None
    if settings.database_url:
        try:
            postgres_pool = await create_postgres_pool(settings.database_url)
        except Exception as exc:
            logger.warning("Postgres unavailable: %s; usage will not be persisted", exc)
    else:
        logger.warning("DATABASE_URL not set; usage will not be persisted")

    app.state.postgres_pool = postgres_pool
    app.state.breakers = CircuitBreakerRegistry()
    usage_logger = UsageLogger(postgres_pool) if postgres_pool is not None else None
    app.state.gateways = build_gateways(settings, app.state.breakers, usage_logger)
    logger.info(
        "AI Gateway ready providers=%s keys_configured=%s",
        ",".join(app.state.gateways), ",".join(settings.api_keys) or "none",
    )
    yield

    logger.info("Shutting down AI Gateway...")
    for gateway in app.state.gateways.values():
        await gateway.close()
    if postgres_pool is not None:
        await postgres_pool.close()
    logger.info("AI Gateway stopped.")


app = FastAPI(
    title="AI Gateway",
    description="Resilient, cost-metered access to LLM providers",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {
        "status": "ok",
        "service": "ai-gateway",
        "database_available": app.state.postgres_pool is not None,
        "ai_available": bool(settings.api_keys),
        "circuit_breakers": {b.name: b.state.value for b in app.state.breakers.all()},
    }
