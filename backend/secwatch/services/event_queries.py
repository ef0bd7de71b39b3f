"""
Read side of the event store: filtered queries, summaries, snapshots.

All counting happens in SQL via GROUP BY; rows are only materialized
for the filtered event list itself.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.models.alert import Alert
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.models.security_event import SecurityEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENT_LIMIT = 100
MAX_EVENT_LIMIT = 1000
DEFAULT_SUMMARY_DAYS = 7


@dataclass(frozen=True, slots=True)
class EventFilters:
    event_type: SecurityEventType | None = None
    severity: Severity | None = None
    source: str | None = None
    user_id: str | None = None
    ip_hash: str | None = None
    since: datetime.datetime | None = None
    until: datetime.datetime | None = None

    def apply(self, stmt: Select) -> Select:
        if self.event_type is not None:
            stmt = stmt.where(SecurityEvent.event_type == self.event_type.value)
        if self.severity is not None:
            stmt = stmt.where(SecurityEvent.severity == self.severity.value)
        if self.source:
            stmt = stmt.where(SecurityEvent.source == self.source)
        if self.user_id:
            stmt = stmt.where(SecurityEvent.user_id == self.user_id)
        if self.ip_hash:
            stmt = stmt.where(SecurityEvent.ip_hash == self.ip_hash)
        if self.since is not None:
            stmt = stmt.where(SecurityEvent.created_at >= self.since)
        if self.until is not None:
            stmt = stmt.where(SecurityEvent.created_at <= self.until)
        return stmt


@dataclass(slots=True)
class EventSummary:
    total_events: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    earliest: datetime.datetime | None = None
    latest: datetime.datetime | None = None


@dataclass(frozen=True, slots=True)
class SecuritySummary:
    days_back: int
    total_events: int
    events_by_severity: dict[str, int]
    average_risk_score: Decimal | None
    active_alerts: int
    alerts_by_severity: dict[str, int]
    unacknowledged_alerts: int


async def query_events(
    session: AsyncSession,
    filters: EventFilters | None = None,
    limit: int = DEFAULT_EVENT_LIMIT,
) -> list[SecurityEvent]:
    """Newest-first filtered event list, capped at MAX_EVENT_LIMIT rows."""
    filters = filters or EventFilters()
    stmt = filters.apply(select(SecurityEvent))
    stmt = stmt.order_by(SecurityEvent.created_at.desc()).limit(min(limit, MAX_EVENT_LIMIT))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _count_by(
    session: AsyncSession,
    column: Any,
    filters: EventFilters,
) -> dict[str, int]:
    stmt = filters.apply(
        select(column, func.count().label("n")).select_from(SecurityEvent)
    ).group_by(column)
    return {key: int(n) for key, n in (await session.execute(stmt)).all()}


async def summarize_events(
    session: AsyncSession,
    filters: EventFilters | None = None,
) -> EventSummary:
    """Counts by type, severity and source plus the covered time range."""
    filters = filters or EventFilters()

    range_stmt = filters.apply(
        select(
            func.count().label("total"),
            func.min(SecurityEvent.created_at).label("earliest"),
            func.max(SecurityEvent.created_at).label("latest"),
        ).select_from(SecurityEvent)
    )
    totals = (await session.execute(range_stmt)).one()

    return EventSummary(
        total_events=int(totals.total),
        by_type=await _count_by(session, SecurityEvent.event_type, filters),
        by_severity=await _count_by(session, SecurityEvent.severity, filters),
        by_source=await _count_by(session, SecurityEvent.source, filters),
        earliest=totals.earliest,
        latest=totals.latest,
    )


async def get_security_summary(
    session: AsyncSession,
    days_back: int = DEFAULT_SUMMARY_DAYS,
    now: datetime.datetime | None = None,
) -> SecuritySummary:
    """Dashboard roll-up: recent events by severity and the open alert queue."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    filters = EventFilters(since=now - datetime.timedelta(days=days_back))

    events_by_severity = await _count_by(session, SecurityEvent.severity, filters)

    avg_stmt = filters.apply(
        select(func.avg(SecurityEvent.risk_score)).select_from(SecurityEvent)
    )
    avg_risk = (await session.execute(avg_stmt)).scalar_one_or_none()

    alert_stmt = (
        select(Alert.severity, func.count().label("n"))
        .where(Alert.is_active.is_(True))
        .group_by(Alert.severity)
    )
    alerts_by_severity = {
        severity: int(n) for severity, n in (await session.execute(alert_stmt)).all()
    }

    unack_stmt = select(func.count()).select_from(Alert).where(
        Alert.is_active.is_(True),
        Alert.is_acknowledged.is_(False),
    )
    unacknowledged = int((await session.execute(unack_stmt)).scalar_one())

    return SecuritySummary(
        days_back=days_back,
        total_events=sum(events_by_severity.values()),
        events_by_severity=events_by_severity,
        average_risk_score=(
            None if avg_risk is None
            else Decimal(str(avg_risk)).quantize(Decimal("0.01"))
        ),
        active_alerts=sum(alerts_by_severity.values()),
        alerts_by_severity=alerts_by_severity,
        unacknowledged_alerts=unacknowledged,
    )


async def list_alerts(
    session: AsyncSession,
    unacknowledged_only: bool = False,
    limit: int = DEFAULT_EVENT_LIMIT,
) -> list[Alert]:
    """Active alerts, newest first."""
    stmt = select(Alert).where(Alert.is_active.is_(True))
    if unacknowledged_only:
        stmt = stmt.where(Alert.is_acknowledged.is_(False))
    stmt = stmt.order_by(Alert.created_at.desc()).limit(min(limit, MAX_EVENT_LIMIT))
    return list((await session.execute(stmt)).scalars().all())


# ── Snapshot ────────────────────────────────────────────────
def _event_record(event: SecurityEvent) -> dict[str, Any]:
    return {
        "id": str(event.id),
        "event_type": event.event_type,
        "source": event.source,
        "severity": event.severity,
        "payload": event.payload,
        "risk_score": None if event.risk_score is None else str(event.risk_score),
        "api_key_id": None if event.api_key_id is None else str(event.api_key_id),
        "ip_hash": event.ip_hash,
        "user_id": event.user_id,
        "route": event.route,
        "created_at": event.created_at.isoformat(),
    }


async def build_snapshot(
    session: AsyncSession,
    filters: EventFilters | None = None,
    limit: int = MAX_EVENT_LIMIT,
) -> dict[str, Any]:
    """JSON-ready export: the filtered events plus their summary."""
    filters = filters or EventFilters()
    events = await query_events(session, filters, limit)
    summary = await summarize_events(session, filters)

    return {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "events": [_event_record(e) for e in events],
        "summary": {
            "total_events": summary.total_events,
            "by_type": summary.by_type,
            "by_severity": summary.by_severity,
            "by_source": summary.by_source,
            "time_range": {
                "earliest": summary.earliest.isoformat() if summary.earliest else None,
                "latest": summary.latest.isoformat() if summary.latest else None,
            },
        },
    }
