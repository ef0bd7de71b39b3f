"""
Tests for POST /jobs dispatch and error mapping.
"""

import datetime
from decimal import Decimal

import pytest

from secwatch.models.cost_analysis import CostAnalysis

from factories import NOW, add_usage, make_key


async def run(client, job_type, **data):
    return await client.post("/jobs", json={"type": job_type, "data": data})


class TestCostJobs:
    async def test_analyze_costs_with_budget_alert(self, client, session):
        key_id = await make_key(session, "openai", cost_limit_monthly=Decimal("10"))
        await add_usage(session, key_id, 4, timestamp=NOW, cost=Decimal("0.5"))

        response = await run(client, "analyze_costs", analysis_date="2026-10-19", period_type="daily")

        assert response.status_code == 200
        body = response.json()
        assert body["type"] == "analyze_costs"
        result = body["result"]
        assert result["total_calls"] == 4
        assert Decimal(result["total_cost"]) == 2
        assert Decimal(result["projected_monthly_cost"]) == 60
        assert [p["provider"] for p in result["providers"]] == ["openai"]
        assert result["cost_alerts_created"] == 1

    async def test_forecast_needs_history(self, client):
        response = await run(client, "forecast_costs", forecast_days=14)

        assert response.status_code == 400
        assert "Insufficient historical data" in response.json()["detail"]

    async def test_forecast(self, client, session):
        today = datetime.datetime.now(datetime.timezone.utc).date()
        for offset in range(10):
            session.add(
                CostAnalysis(
                    analysis_date=today - datetime.timedelta(days=offset),
                    period_type="daily",
                    total_cost=Decimal("4"),
                    total_calls=1,
                    total_errors=0,
                    cost_per_call=Decimal("4"),
                    cost_efficiency_score=Decimal("50"),
                    projected_monthly_cost=Decimal("120"),
                    provider_breakdown={},
                )
            )
        await session.commit()

        response = await run(client, "forecast_costs", forecast_days=5)

        result = response.json()["result"]
        assert result["history_days"] == 10
        assert result["trend_direction"] == "stable"
        assert len(result["daily_forecasts"]) == 5
        assert Decimal(result["total_forecast_cost"]) == 20

    @pytest.mark.parametrize("days", [0, 366])
    async def test_forecast_days_bounds(self, client, days):
        assert (await run(client, "forecast_costs", forecast_days=days)).status_code == 422


class TestAlertJobs:
    async def test_create_alert_is_idempotent(self, client):
        data = {
            "alert_type": "service_outage",
            "severity": "high",
            "title": "Stripe API unreachable",
            "message": "5 consecutive health checks failed",
            "service_provider": "stripe",
        }

        first = (await run(client, "create_alert", **data)).json()["result"]
        second = (await run(client, "create_alert", **data)).json()["result"]

        assert first["created"] is True
        assert second == {"created": False, "alert_hash": first["alert_hash"]}
        [alert] = (await client.get("/alerts")).json()
        assert alert["title"] == "Stripe API unreachable"

    async def test_check_key_expiry(self, client, session):
        soon = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=5, hours=1)
        key_id = await make_key(session, "stripe", name="Stripe live", expires_at=soon)

        result = (await run(client, "check_key_expiry", days_ahead=30)).json()["result"]

        assert result["alerts_created"] == 1
        [key] = result["expiring_keys"]
        assert key["api_key_id"] == str(key_id)
        assert key["days_until_expiry"] == 6
        assert key["severity"] == "high"

    async def test_analyze_anomalies(self, client, session):
        key_id = await make_key(session)
        recent = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=5)
        await add_usage(session, key_id, 10, timestamp=recent, success=False)

        result = (await run(client, "analyze_anomalies", hours_back=24)).json()["result"]

        assert result["keys_analyzed"] == 1
        assert [a["type"] for a in result["anomalies"]] == ["high_error_rate"]
        assert result["events_logged"] == 1
        assert result["alerts_created"] == 1


class TestSecurityJobs:
    async def test_log_security_event_and_summary(self, client):
        logged = await run(
            client,
            "log_security_event",
            event_type="payment_fraud",
            source="payments",
            severity="high",
            request_count=150,
            source_ip="203.0.113.50",
            payload={"cardBin": "411111", "checkoutUrl": "https://shop.example/pay?card=4111"},
        )

        result = logged.json()["result"]
        assert result["risk_score"] == 90.0
        assert result["alert"]["created"] is True

        [event] = (await client.get("/events")).json()
        assert event["payload"]["checkoutUrl"] == "https://shop.example/pay"
        assert event["ip_hash"] != "203.0.113.50"

        summary = (await run(client, "get_security_summary", days_back=7)).json()["result"]
        assert summary["total_events"] == 1
        assert summary["events_by_severity"] == {"high": 1}
        assert summary["active_alerts"] == 1
        assert summary["unacknowledged_alerts"] == 1

    async def test_risk_score_bounds(self, client):
        response = await run(
            client, "log_security_event",
            event_type="data_export", source="reports", risk_score=101,
        )
        assert response.status_code == 422


class TestRecommendationJobs:
    async def test_generate_for_key(self, client, session):
        key_id = await make_key(session, "anthropic")
        recent = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=1)
        await add_usage(session, key_id, 2, timestamp=recent, cost=Decimal("8"))

        response = await run(client, "generate_recommendations", api_key_id=str(key_id))

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["service_provider"] == "anthropic"
        assert result["days_analyzed"] == 1
        assert result["generated_count"] == 1
        [rec] = result["recommendations"]
        assert rec["category"] == "cost"
        assert rec["priority"] == 1
        assert Decimal(rec["potential_cost_savings"]) == 144
        assert len(rec["implementation_steps"]) == 4

    async def test_scope_required(self, client):
        assert (await run(client, "generate_recommendations")).status_code == 422


class TestDispatch:
    async def test_unknown_type(self, client):
        assert (await run(client, "rebuild_rollups")).status_code == 422

    async def test_unknown_data_field(self, client):
        response = await run(client, "check_key_expiry", days_ahead=7, dry_run=True)
        assert response.status_code == 422

    async def test_defaults_when_data_omitted(self, client):
        response = await client.post("/jobs", json={"type": "get_security_summary"})

        assert response.status_code == 200
        assert response.json()["result"]["days_back"] == 7
