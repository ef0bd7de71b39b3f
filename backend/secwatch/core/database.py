"""
Async engine, session factory and declarative base for the telemetry store.

  • Request handlers get an AsyncSession through Depends(get_db_session);
    services commit their own unit of work (one event, one analysis, one
    alert) and never share a session across requests.
  • Every model module registers on the single Base.metadata used by
    Alembic autogenerate.
  • Upserts (cost analyses, ingest counters) are built with
    dialect_insert() so ON CONFLICT works on Postgres and on the SQLite
    engine the tests use.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from secwatch.core.config import settings

# pool_pre_ping: ingest is bursty, idle connections go stale between bursts
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# expire_on_commit=False: results are serialized after the service commits
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all SQLAlchemy models."""


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed on exit."""
    async with async_session_factory() as session:
        yield session


def dialect_insert(session: AsyncSession, model: type[Base]) -> Any:
    """
    INSERT construct with on_conflict_do_update() for the session's dialect.

    Postgres and SQLite share the on_conflict_do_update(index_elements=...,
    set_=...) signature, so callers stay dialect-agnostic.
    """
    if session.bind is not None and session.bind.dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
