"""Database connection factory for PostgreSQL."""

import asyncpg


async def create_postgres_pool(database_url: str) -> asyncpg.Pool:
    """Create asyncpg connection pool for the usage log."""
    return await asyncpg.create_pool(
        database_url,
        min_size=1,
        max_size=10,
        command_timeout=60,
    )
