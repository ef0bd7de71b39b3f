"""
Usage anomaly detection over a trailing window of api_usage_logs.

Pipeline:
  1. One GROUP BY api_key_id query → KeyUsageWindow per key
     (calls, failures, distinct source IPs, total cost).
  2. Pure rules from services/scoring.py → Anomaly list per key.
  3. Anomalies with risk_score > 50 are stored as SecurityEvents
     (committed as one batch).
  4. Anomalies with risk_score > 70 additionally raise a deduplicated
     security_breach alert.

Keys are independent: one key's window never influences another's.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.models.usage_log import UsageLog
from secwatch.services.alerts import raise_for_risk
from secwatch.services.scoring import (
    DEFAULT_THRESHOLD_MULTIPLIER,
    PERSIST_RISK_THRESHOLD,
    Anomaly,
    KeyUsageWindow,
    evaluate_window,
)
from secwatch.services.security_events import add_event

logger = logging.getLogger(__name__)

ANOMALY_EVENT_SOURCE = "anomaly-analyzer"
DEFAULT_HOURS_BACK = 24


@dataclass(slots=True)
class AnomalyReport:
    hours_back: int
    keys_analyzed: int = 0
    anomalies: list[Anomaly] = field(default_factory=list)
    events_logged: int = 0
    alerts_created: int = 0


async def load_usage_windows(
    session: AsyncSession,
    since: datetime.datetime,
    hours: float,
    api_key_id: uuid.UUID | None = None,
) -> list[KeyUsageWindow]:
    """
    SQL: SELECT api_key_id, COUNT(*), SUM(failed), COUNT(DISTINCT source_ip),
                SUM(cost_amount)
         FROM api_usage_logs WHERE timestamp >= :since GROUP BY api_key_id
    """
    stmt = (
        select(
            UsageLog.api_key_id,
            func.count().label("total_calls"),
            func.sum(case((UsageLog.success.is_(False), 1), else_=0)).label("failed_calls"),
            func.count(distinct(UsageLog.source_ip)).label("unique_ips"),
            func.sum(UsageLog.cost_amount).label("total_cost"),
        )
        .where(UsageLog.timestamp >= since)
        .group_by(UsageLog.api_key_id)
    )
    if api_key_id is not None:
        stmt = stmt.where(UsageLog.api_key_id == api_key_id)

    rows = (await session.execute(stmt)).all()
    return [
        KeyUsageWindow(
            key_id=row.api_key_id,
            hours=hours,
            total_calls=int(row.total_calls),
            failed_calls=int(row.failed_calls or 0),
            unique_ips=int(row.unique_ips or 0),
            total_cost=Decimal(str(row.total_cost or 0)),
        )
        for row in rows
    ]


def _stage_anomaly_event(session: AsyncSession, anomaly: Anomaly, hours_back: int) -> None:
    add_event(
        session,
        event_type=anomaly.type.event_type,
        source=ANOMALY_EVENT_SOURCE,
        severity=anomaly.severity,
        api_key_id=anomaly.key_id,
        risk_score=anomaly.risk_score,
        payload={
            "title": f"Anomaly Detected: {anomaly.type.value}",
            "description": anomaly.description,
            "time_window_minutes": hours_back * 60,
        },
    )


async def analyze_anomalies(
    session: AsyncSession,
    hours_back: int = DEFAULT_HOURS_BACK,
    api_key_id: uuid.UUID | None = None,
    threshold_multiplier: float = DEFAULT_THRESHOLD_MULTIPLIER,
    now: datetime.datetime | None = None,
) -> AnomalyReport:
    """
    Run every anomaly rule over the last hours_back hours of usage.

    Args:
        api_key_id:           Restrict the analysis to a single key.
        threshold_multiplier: Frequency rule fires above baseline × this.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    since = now - datetime.timedelta(hours=hours_back)

    windows = await load_usage_windows(session, since, hours_back, api_key_id)
    report = AnomalyReport(hours_back=hours_back, keys_analyzed=len(windows))

    for window in windows:
        report.anomalies.extend(evaluate_window(window, threshold_multiplier))

    # ── Persist significant anomalies ───────────────────────
    significant = [a for a in report.anomalies if a.risk_score > PERSIST_RISK_THRESHOLD]
    if significant:
        for anomaly in significant:
            _stage_anomaly_event(session, anomaly, hours_back)
        await session.commit()
        report.events_logged = len(significant)

    # ── Alert on high-risk anomalies ────────────────────────
    for anomaly in report.anomalies:
        result = await raise_for_risk(session, anomaly)
        if result is not None and result.created:
            report.alerts_created += 1

    logger.info(
        "Anomaly analysis over %dh: %d keys, %d anomalies, %d events, %d new alerts",
        hours_back, report.keys_analyzed, len(report.anomalies),
        report.events_logged, report.alerts_created,
    )
    return report
