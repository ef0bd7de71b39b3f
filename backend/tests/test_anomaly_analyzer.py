"""
Tests for usage anomaly detection end to end: windows, events, alerts.
"""

import datetime
from decimal import Decimal

from sqlalchemy import func, select

from secwatch.models.alert import Alert
from secwatch.models.enums import AnomalyType
from secwatch.models.security_event import SecurityEvent
from secwatch.services.anomaly_analyzer import (
    ANOMALY_EVENT_SOURCE,
    analyze_anomalies,
    load_usage_windows,
)

from factories import NOW, add_usage, make_key

RECENT = NOW - datetime.timedelta(minutes=10)


async def count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestLoadUsageWindows:
    async def test_per_key_totals(self, session):
        key_id = await make_key(session)
        await add_usage(session, key_id, 3, timestamp=RECENT, cost=Decimal("0.5"),
                        source_ips=["198.51.100.1", "198.51.100.2"])
        await add_usage(session, key_id, 1, timestamp=RECENT, cost=Decimal("0.25"), success=False)
        # Outside the window
        await add_usage(session, key_id, 5, timestamp=NOW - datetime.timedelta(hours=30))

        [window] = await load_usage_windows(session, NOW - datetime.timedelta(hours=24), 24)

        assert window.key_id == key_id
        assert window.total_calls == 4
        assert window.failed_calls == 1
        assert window.unique_ips == 2
        assert window.total_cost == Decimal("1.75")


class TestAnalyzeAnomalies:
    async def test_quiet_keys(self, session):
        key_id = await make_key(session)
        await add_usage(session, key_id, 5, timestamp=RECENT)

        report = await analyze_anomalies(session, now=NOW)

        assert report.keys_analyzed == 1
        assert report.anomalies == []
        assert await count(session, SecurityEvent) == 0

    async def test_medium_risk_is_logged_not_alerted(self, session):
        key_id = await make_key(session)
        # 40 req/h → risk 70: above the event threshold, not above the alert one
        await add_usage(session, key_id, 40, timestamp=RECENT)

        report = await analyze_anomalies(session, hours_back=1, now=NOW)

        [anomaly] = report.anomalies
        assert anomaly.type is AnomalyType.UNUSUAL_FREQUENCY
        assert anomaly.risk_score == 70.0
        assert report.events_logged == 1
        assert report.alerts_created == 0
        assert await count(session, Alert) == 0

        event = (await session.execute(select(SecurityEvent))).scalar_one()
        assert event.event_type == "unusual_frequency"
        assert event.source == ANOMALY_EVENT_SOURCE
        assert event.api_key_id == key_id
        assert event.risk_score == Decimal("70")
        assert event.payload["title"] == "Anomaly Detected: unusual_frequency"
        assert event.payload["time_window_minutes"] == 60

    async def test_low_risk_is_neither_logged_nor_alerted(self, session):
        key_id = await make_key(session)
        # 3 of 10 calls failed → 30% → risk 50, not above 50
        await add_usage(session, key_id, 7, timestamp=RECENT)
        await add_usage(session, key_id, 3, timestamp=RECENT, success=False)

        report = await analyze_anomalies(session, now=NOW)

        assert [a.type for a in report.anomalies] == [AnomalyType.HIGH_ERROR_RATE]
        assert report.events_logged == 0
        assert await count(session, SecurityEvent) == 0

    async def test_high_risk_raises_one_alert_per_key(self, session):
        key_id = await make_key(session)
        # 50 req/h (risk 80) and 60% errors (risk 80)
        await add_usage(session, key_id, 20, timestamp=RECENT)
        await add_usage(session, key_id, 30, timestamp=RECENT, success=False)

        report = await analyze_anomalies(session, hours_back=1, now=NOW)

        assert {a.type for a in report.anomalies} == {
            AnomalyType.UNUSUAL_FREQUENCY, AnomalyType.HIGH_ERROR_RATE,
        }
        assert report.events_logged == 2
        assert report.alerts_created == 1

        alert = (await session.execute(select(Alert))).scalar_one()
        assert alert.alert_type == "security_breach"
        assert alert.api_key_id == key_id

    async def test_rerun_logs_events_but_not_alerts(self, session):
        key_id = await make_key(session)
        await add_usage(session, key_id, 10, timestamp=RECENT, success=False)

        first = await analyze_anomalies(session, now=NOW)
        second = await analyze_anomalies(session, now=NOW)

        assert first.alerts_created == 1
        assert second.alerts_created == 0
        assert await count(session, SecurityEvent) == 2
        assert await count(session, Alert) == 1

    async def test_keys_are_independent_and_filterable(self, session):
        noisy = await make_key(session, "openai")
        quiet = await make_key(session, "stripe")
        await add_usage(session, noisy, 5, timestamp=RECENT, cost=Decimal("0.5"))
        await add_usage(session, quiet, 5, timestamp=RECENT)

        everything = await analyze_anomalies(session, now=NOW)
        only_quiet = await analyze_anomalies(session, api_key_id=quiet, now=NOW)

        assert everything.keys_analyzed == 2
        assert [(a.key_id, a.type) for a in everything.anomalies] == [
            (noisy, AnomalyType.HIGH_COST_REQUESTS)
        ]
        assert only_quiet.keys_analyzed == 1
        assert only_quiet.anomalies == []
