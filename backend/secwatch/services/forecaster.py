"""
Linear-trend cost forecasting from daily cost analyses.

Model: mean daily cost plus an ordinary least-squares slope fitted over
the day index 1..n (closed form, no library fit). Day i of the horizon
is projected as max(0, mean + slope × i), with confidence decaying
linearly from 1.0 toward a floor of 0.5 at the end of the horizon.

Fewer than MIN_HISTORY_DAYS daily analyses is a hard failure: a trend
fitted on a handful of points would be misleading.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.errors import InsufficientDataError
from secwatch.models.cost_analysis import CostAnalysis
from secwatch.models.enums import PeriodType

logger = logging.getLogger(__name__)

HISTORY_WINDOW_DAYS = 90
MIN_HISTORY_DAYS = 7
DEFAULT_FORECAST_DAYS = 30
CONFIDENCE_FLOOR = 0.5

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class DailyForecast:
    date: datetime.date
    predicted_cost: Decimal
    confidence: float


@dataclass(frozen=True, slots=True)
class CostForecast:
    forecast_days: int
    history_days: int
    avg_daily_cost: Decimal
    trend: Decimal
    trend_direction: str
    total_forecast_cost: Decimal
    daily_forecasts: list[DailyForecast]


def linear_trend(costs: Sequence[Decimal]) -> Decimal:
    """
    OLS slope of costs against x = 1..n.

        slope = (Σxy − Σx·ȳ) / (Σx² − (Σx)²/n)
    """
    n = len(costs)
    if n < 2:
        return _ZERO

    mean = sum(costs, _ZERO) / n
    sum_x = Decimal(n * (n + 1)) / 2
    sum_x2 = Decimal(n * (n + 1) * (2 * n + 1)) / 6
    sum_xy = sum((cost * (index + 1) for index, cost in enumerate(costs)), _ZERO)

    return (sum_xy - sum_x * mean) / (sum_x2 - sum_x * sum_x / n)


def trend_direction(trend: Decimal) -> str:
    if trend > 0:
        return "increasing"
    if trend < 0:
        return "decreasing"
    return "stable"


def confidence_for_day(day_index: int, forecast_days: int) -> float:
    return max(CONFIDENCE_FLOOR, 1 - (day_index / forecast_days) * 0.5)


def project_costs(
    costs: Sequence[Decimal],
    forecast_days: int,
    start_date: datetime.date,
) -> CostForecast:
    """
    Pure projection step — no I/O.

    Raises:
        InsufficientDataError: If fewer than MIN_HISTORY_DAYS costs are given.
    """
    if len(costs) < MIN_HISTORY_DAYS:
        raise InsufficientDataError(
            f"Insufficient historical data for forecasting: "
            f"{len(costs)} daily analyses, at least {MIN_HISTORY_DAYS} required."
        )

    mean = sum(costs, _ZERO) / len(costs)
    trend = linear_trend(costs)

    daily = [
        DailyForecast(
            date=start_date + datetime.timedelta(days=i),
            predicted_cost=max(_ZERO, mean + trend * i),
            confidence=confidence_for_day(i, forecast_days),
        )
        for i in range(1, forecast_days + 1)
    ]

    return CostForecast(
        forecast_days=forecast_days,
        history_days=len(costs),
        avg_daily_cost=mean,
        trend=trend,
        trend_direction=trend_direction(trend),
        total_forecast_cost=sum((d.predicted_cost for d in daily), _ZERO),
        daily_forecasts=daily,
    )


async def forecast_costs(
    session: AsyncSession,
    forecast_days: int = DEFAULT_FORECAST_DAYS,
    today: datetime.date | None = None,
) -> CostForecast:
    """
    Forecast the next forecast_days of cost from the last 90 days of
    daily analyses.

    Raises:
        InsufficientDataError: Fewer than 7 daily analyses on record.
    """
    today = today or datetime.datetime.now(datetime.timezone.utc).date()
    history_start = today - datetime.timedelta(days=HISTORY_WINDOW_DAYS)

    stmt = (
        select(CostAnalysis.total_cost)
        .where(
            CostAnalysis.period_type == PeriodType.DAILY.value,
            CostAnalysis.analysis_date >= history_start,
        )
        .order_by(CostAnalysis.analysis_date.asc())
    )
    costs = [Decimal(str(cost)) for cost in (await session.execute(stmt)).scalars().all()]

    forecast = project_costs(costs, forecast_days, today)
    logger.info(
        "Forecast over %d days from %d days of history: trend %s",
        forecast_days, forecast.history_days, forecast.trend_direction,
    )
    return forecast
