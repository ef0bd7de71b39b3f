"""
Read endpoints for downstream consumers (dashboards, exports).

Endpoints:
  GET /events          — filtered security events, newest first
  GET /events/summary  — counts by type / severity / source + time range
  GET /alerts          — active alerts, optionally unacknowledged only
"""

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.database import get_db_session
from secwatch.models.alert import Alert
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.models.security_event import SecurityEvent
from secwatch.schemas.events import (
    AlertOut,
    EventSummaryOut,
    SecurityEventOut,
    TimeRangeOut,
)
from secwatch.services.event_queries import (
    DEFAULT_EVENT_LIMIT,
    MAX_EVENT_LIMIT,
    EventFilters,
    list_alerts,
    query_events,
    summarize_events,
)

router = APIRouter(tags=["Events"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def event_filters(
    event_type: SecurityEventType | None = None,
    severity: Severity | None = None,
    source: str | None = None,
    user_id: str | None = None,
    ip_hash: str | None = None,
    since: datetime.datetime | None = None,
    until: datetime.datetime | None = None,
) -> EventFilters:
    """Query-string filters shared by the list and summary endpoints."""
    return EventFilters(
        event_type=event_type,
        severity=severity,
        source=source,
        user_id=user_id,
        ip_hash=ip_hash,
        since=since,
        until=until,
    )


Filters = Annotated[EventFilters, Depends(event_filters)]


@router.get(
    "/events",
    response_model=list[SecurityEventOut],
    summary="List security events",
)
async def get_events(
    session: DbSession,
    filters: Filters,
    limit: Annotated[int, Query(ge=1, le=MAX_EVENT_LIMIT)] = DEFAULT_EVENT_LIMIT,
) -> list[SecurityEvent]:
    return await query_events(session, filters, limit)


@router.get(
    "/events/summary",
    response_model=EventSummaryOut,
    summary="Aggregate counts for the filtered events",
)
async def get_event_summary(session: DbSession, filters: Filters) -> EventSummaryOut:
    summary = await summarize_events(session, filters)
    return EventSummaryOut(
        total_events=summary.total_events,
        by_type=summary.by_type,
        by_severity=summary.by_severity,
        by_source=summary.by_source,
        time_range=TimeRangeOut(earliest=summary.earliest, latest=summary.latest),
    )


@router.get(
    "/alerts",
    response_model=list[AlertOut],
    summary="List active alerts",
)
async def get_alerts(
    session: DbSession,
    unacknowledged_only: bool = False,
    limit: Annotated[int, Query(ge=1, le=MAX_EVENT_LIMIT)] = DEFAULT_EVENT_LIMIT,
) -> list[Alert]:
    return await list_alerts(session, unacknowledged_only, limit)
