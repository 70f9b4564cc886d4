"""Alembic environment for the usage-metrics schema.

The database URL comes from the same settings loader the service uses, so
EXTERNAL_DATABASE_URL / DATABASE_URL and .env behave identically for both.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from app.config import load_settings

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _migration_url() -> str:
    database_url = load_settings().database_url
    if not database_url:
        raise RuntimeError("DATABASE_URL (or EXTERNAL_DATABASE_URL) must be set to run migrations")
    # Raw-SQL migrations run on the sync driver; the service itself uses asyncpg
    return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)


config.set_main_option("sqlalchemy.url", _migration_url())


def run_migrations_offline() -> None:
    """Emit the usage-metrics DDL as SQL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a short-lived connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
