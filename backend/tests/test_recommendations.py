"""
Tests for the usage-based optimization recommendations.
"""

import datetime
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from secwatch.models.recommendation import OptimizationRecommendation
from secwatch.services.recommendations import (
    UsageProfile,
    generate_recommendations,
    recommend,
)

from factories import NOW, add_usage, make_key

TODAY = NOW.date()


async def stored(session):
    return (await session.execute(select(OptimizationRecommendation))).scalars().all()


class TestRules:
    def test_thresholds_are_exclusive(self):
        at_limit = UsageProfile(
            days_analyzed=3,
            avg_daily_cost=Decimal("10"),
            avg_error_rate=5.0,
            avg_response_time_ms=2000.0,
        )
        assert recommend(at_limit, "openai") == []

    def test_just_over_every_threshold(self):
        over = UsageProfile(
            days_analyzed=3,
            avg_daily_cost=Decimal("10.01"),
            avg_error_rate=5.1,
            avg_response_time_ms=2001.0,
        )

        found = recommend(over, "openai")

        assert [(r.category, r.priority) for r in found] == [
            ("cost", 1), ("performance", 2), ("performance", 3),
        ]
        assert found[0].potential_cost_savings == Decimal("90.090")
        assert found[1].potential_performance_gain == 15
        assert found[2].potential_performance_gain == 40
        assert [r.implementation_effort for r in found] == ["medium", "low", "medium"]
        assert all(len(r.implementation_steps) == 4 for r in found)


class TestGenerateForKey:
    async def test_cost_errors_and_latency(self, session):
        key_id = await make_key(session, "anthropic")
        yesterday = NOW - datetime.timedelta(days=1)
        await add_usage(session, key_id, 1, cost=Decimal("8"), response_time_ms=3000)
        await add_usage(session, key_id, 1, cost=Decimal("8"), response_time_ms=3000, success=False)
        await add_usage(session, key_id, 2, timestamp=yesterday, cost=Decimal("4"), response_time_ms=3000)

        report = await generate_recommendations(session, api_key_id=key_id, today=TODAY)

        assert report.service_provider == "anthropic"
        assert report.days_analyzed == 2
        assert report.profile.avg_daily_cost == 12
        assert report.profile.avg_error_rate == pytest.approx(25.0)
        assert report.generated_count == 3

        cost, errors, latency = report.recommendations
        assert cost.title == "High Daily API Costs Detected"
        assert cost.description.startswith("Average daily cost of $12.00 is above")
        assert cost.potential_cost_savings == 108
        assert errors.description.startswith("Average error rate of 25.0% indicates")
        assert latency.description.startswith("Average response time of 3000ms is")

        rows = await stored(session)
        assert len(rows) == 3
        assert {r.api_key_id for r in rows} == {key_id}

    async def test_healthy_usage(self, session):
        key_id = await make_key(session)
        await add_usage(session, key_id, 5)

        report = await generate_recommendations(session, api_key_id=key_id, today=TODAY)

        assert report.days_analyzed == 1
        assert report.recommendations == []
        assert await stored(session) == []

    async def test_usage_outside_window_ignored(self, session):
        key_id = await make_key(session)
        old = NOW - datetime.timedelta(days=40)
        await add_usage(session, key_id, 10, timestamp=old, cost=Decimal("50"), success=False)

        report = await generate_recommendations(session, api_key_id=key_id, today=TODAY)

        assert report.profile is None
        assert report.days_analyzed == 0
        assert report.generated_count == 0

    async def test_unknown_key(self, session):
        report = await generate_recommendations(
            session, api_key_id=uuid.uuid4(), today=TODAY,
        )

        assert report.service_provider is None
        assert report.recommendations == []

    async def test_reruns_keep_history(self, session):
        key_id = await make_key(session)
        await add_usage(session, key_id, 2, cost=Decimal("8"))

        for _ in range(2):
            report = await generate_recommendations(session, api_key_id=key_id, today=TODAY)
            assert report.generated_count == 1

        assert len(await stored(session)) == 2


class TestGenerateForProvider:
    async def test_keys_of_provider_are_pooled(self, session):
        first = await make_key(session, "openai", name="openai-web")
        second = await make_key(session, "openai", name="openai-batch")
        other = await make_key(session, "stripe")
        await add_usage(session, first, 1, cost=Decimal("6"))
        await add_usage(session, second, 1, cost=Decimal("6"))
        await add_usage(session, other, 4, cost=Decimal("100"))

        report = await generate_recommendations(session, service_provider="openai", today=TODAY)

        assert report.profile.avg_daily_cost == 12
        [rec] = report.recommendations
        assert rec.category == "cost"
        assert rec.api_key_id is None
        assert rec.service_provider == "openai"

    async def test_scope_required(self, session):
        with pytest.raises(ValueError):
            await generate_recommendations(session, today=TODAY)
