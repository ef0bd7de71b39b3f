"""
Tests for linear-trend cost forecasting.
"""

import datetime
from decimal import Decimal

import pytest

from secwatch.core.errors import InsufficientDataError
from secwatch.models.cost_analysis import CostAnalysis
from secwatch.services.forecaster import (
    CONFIDENCE_FLOOR,
    confidence_for_day,
    forecast_costs,
    linear_trend,
    project_costs,
)

TODAY = datetime.date(2026, 10, 19)


def costs(*values):
    return [Decimal(str(v)) for v in values]


async def seed_daily(session, values, period_type="daily", end=TODAY):
    """One analysis row per value, the last one dated `end`."""
    for offset, value in enumerate(reversed(values)):
        session.add(
            CostAnalysis(
                analysis_date=end - datetime.timedelta(days=offset),
                period_type=period_type,
                total_cost=Decimal(str(value)),
                total_calls=10,
                total_errors=0,
                cost_per_call=Decimal("0"),
                cost_efficiency_score=Decimal("100"),
                projected_monthly_cost=Decimal("0"),
                provider_breakdown={},
            )
        )
    await session.commit()


class TestLinearTrend:
    def test_perfect_line(self):
        assert linear_trend(costs(1, 2, 3, 4, 5, 6, 7)) == Decimal("1")

    def test_flat(self):
        assert linear_trend(costs(5, 5, 5, 5)) == 0

    def test_decreasing(self):
        assert linear_trend(costs(8, 6, 4, 2)) == Decimal("-2")

    def test_too_short(self):
        assert linear_trend(costs(3)) == 0
        assert linear_trend([]) == 0


class TestProjectCosts:
    def test_requires_seven_days(self):
        with pytest.raises(InsufficientDataError):
            project_costs(costs(1, 2, 3, 4, 5), 30, TODAY)

    def test_increasing_series(self):
        forecast = project_costs(costs(1, 2, 3, 4, 5, 6, 7), 3, TODAY)

        assert forecast.avg_daily_cost == Decimal("4")
        assert forecast.trend == Decimal("1")
        assert forecast.trend_direction == "increasing"
        assert [d.predicted_cost for d in forecast.daily_forecasts] == costs(5, 6, 7)
        assert forecast.total_forecast_cost == Decimal("18")
        assert forecast.daily_forecasts[0].date == TODAY + datetime.timedelta(days=1)

    def test_predictions_never_negative(self):
        forecast = project_costs(costs(12, 10, 8, 6, 4, 2, 0), 10, TODAY)

        assert forecast.trend_direction == "decreasing"
        assert all(d.predicted_cost >= 0 for d in forecast.daily_forecasts)
        assert forecast.daily_forecasts[-1].predicted_cost == 0

    def test_stable(self):
        forecast = project_costs(costs(*[2.5] * 7), 5, TODAY)
        assert forecast.trend_direction == "stable"
        assert forecast.total_forecast_cost == Decimal("12.5")

    def test_confidence_decays_to_floor(self):
        assert confidence_for_day(1, 30) == pytest.approx(1 - 1 / 60)
        assert confidence_for_day(30, 30) == CONFIDENCE_FLOOR
        forecast = project_costs(costs(*range(1, 8)), 30, TODAY)
        confidences = [d.confidence for d in forecast.daily_forecasts]
        assert confidences == sorted(confidences, reverse=True)


class TestForecastCosts:
    async def test_insufficient_history(self, session):
        await seed_daily(session, [1, 2, 3, 4, 5])

        with pytest.raises(InsufficientDataError):
            await forecast_costs(session, 30, today=TODAY)

    async def test_reads_daily_rows_in_date_order(self, session):
        await seed_daily(session, [1, 2, 3, 4, 5, 6, 7, 8])
        # Weekly rows and rows older than 90 days are ignored
        await seed_daily(session, [500], period_type="weekly")
        await seed_daily(session, [900], end=TODAY - datetime.timedelta(days=120))

        forecast = await forecast_costs(session, 2, today=TODAY)

        assert forecast.history_days == 8
        assert forecast.trend == Decimal("1")
        assert [d.predicted_cost for d in forecast.daily_forecasts] == costs(5.5, 6.5)
