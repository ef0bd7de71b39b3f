"""
Database-backed rate limiter for the telemetry ingest endpoint.

Enforces a per-client reports-per-minute limit using atomic
INSERT … ON CONFLICT counters in the ingest_rate_limits table. Clients
are identified by their salted IP hash; raw IPs never reach the table.

Rules:
  • Check before counting: a rejected report (429) is not counted.
  • The counter is a single INSERT … ON CONFLICT DO UPDATE, so
    concurrent reports from one client never lose an increment.
  • Buckets are whole UTC minutes.
"""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.database import dialect_insert
from secwatch.models.ingest_rate_limit import IngestRateLimit

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):
    """Raised when a client exceeds the ingest rate limit."""


def _minute_bucket(now: datetime.datetime) -> datetime.datetime:
    """Floor a timestamp to the start of the current minute (UTC)."""
    return now.replace(second=0, microsecond=0)


async def _reports_this_minute(
    session: AsyncSession,
    client_hash: str,
    window_start: datetime.datetime,
) -> int:
    """Reports already counted for the client in this minute (0 if none)."""
    stmt = select(IngestRateLimit.request_count).where(
        IngestRateLimit.client_hash == client_hash,
        IngestRateLimit.window_start == window_start,
    )
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    return row if row is not None else 0


async def _count_report(
    session: AsyncSession,
    client_hash: str,
    window_start: datetime.datetime,
) -> None:
    """Upsert the minute counter: insert 1 or add 1 in one statement."""
    stmt = dialect_insert(session, IngestRateLimit).values(
        client_hash=client_hash,
        window_start=window_start,
        request_count=1,
    ).on_conflict_do_update(
        index_elements=["client_hash", "window_start"],
        set_={"request_count": IngestRateLimit.request_count + 1},
    )
    await session.execute(stmt)


async def check_and_increment_report(
    session: AsyncSession,
    client_hash: str,
    limit: int,
    now: datetime.datetime | None = None,
) -> None:
    """
    Count one report for client_hash in the current minute.

    Raises RateLimitExceeded (without incrementing) once the client has
    already sent `limit` reports this minute.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    minute_start = _minute_bucket(now)

    count = await _reports_this_minute(session, client_hash, minute_start)
    if count >= limit:
        raise RateLimitExceeded(f"Ingest limit of {limit} reports/minute exceeded")

    await _count_report(session, client_hash, minute_start)
    await session.commit()
