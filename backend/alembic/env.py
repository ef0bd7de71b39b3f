"""
Alembic migration environment for the telemetry schema (async).

  • The URL is settings.DATABASE_URL unless overridden on the command
    line with `alembic -x db_url=postgresql+asyncpg://… upgrade head`
    (used to migrate a reporting replica without touching .env).
  • target_metadata is Base.metadata with every telemetry model imported,
    so autogenerate sees security_events, api_alerts and friends.
  • compare_type=True: NUMERIC precision on money/risk columns matters.
  • SQLite URLs run in batch mode so ALTERs work on local scratch DBs.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from secwatch.core.config import settings
from secwatch.core.database import Base

import secwatch.models.alert  # noqa: F401
import secwatch.models.api_key  # noqa: F401
import secwatch.models.cost_analysis  # noqa: F401
import secwatch.models.ingest_rate_limit  # noqa: F401
import secwatch.models.recommendation  # noqa: F401
import secwatch.models.security_event  # noqa: F401
import secwatch.models.usage_log  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("db_url") or settings.DATABASE_URL


def _context_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


# ── Offline: emit SQL only ──────────────────────────────────
def run_migrations_offline(url: str) -> None:
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


# ── Online: async engine, sync migration body ───────────────
def _run_with_connection(connection: Connection, url: str) -> None:
    context.configure(connection=connection, **_context_options(url))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online(url: str) -> None:
    config.set_main_option("sqlalchemy.url", url)
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(_run_with_connection, url)
    finally:
        await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline(_database_url())
else:
    asyncio.run(run_migrations_online(_database_url()))
