"""
Idempotent cost analysis over raw usage logs.

Aggregates api_usage_logs (joined to their owning key for the provider)
into one api_cost_analysis row per (analysis_date, period_type).

IDEMPOTENCY:
  Uses INSERT … ON CONFLICT (analysis_date, period_type) DO UPDATE.
  Running this twice for the same period produces identical results,
  and readers never observe a gap between delete and insert.

PERIODS:
  daily   — the analysis date only
  weekly  — the trailing 7 days, analysis date inclusive
  monthly — the 1st of the month through the analysis date
  The monthly projection divides by the full calendar month length.
"""

from __future__ import annotations

import calendar
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.database import dialect_insert
from secwatch.models.api_key import ApiKey
from secwatch.models.cost_analysis import CostAnalysis
from secwatch.models.enums import KeyStatus, PeriodType
from secwatch.models.usage_log import UsageLog
from secwatch.services.scoring import cost_efficiency_score

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PROJECTION_DAYS = Decimal("30")


@dataclass(frozen=True, slots=True)
class ProviderCost:
    """Totals for one service provider within the analysis period."""

    provider: str
    total_cost: Decimal
    total_calls: int
    error_count: int
    total_response_time_ms: int
    projected_monthly_cost: Decimal

    @property
    def avg_response_time_ms(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.total_response_time_ms / self.total_calls

    def as_json(self) -> dict[str, Any]:
        """JSON-safe form for the provider_breakdown column (Decimals as strings)."""
        return {
            "total_cost": str(self.total_cost),
            "total_calls": self.total_calls,
            "error_count": self.error_count,
            "total_response_time_ms": self.total_response_time_ms,
            "avg_response_time_ms": round(self.avg_response_time_ms, 2),
            "projected_monthly_cost": str(self.projected_monthly_cost),
        }


@dataclass(frozen=True, slots=True)
class CostAnalysisResult:
    analysis_date: datetime.date
    period_type: PeriodType
    start_date: datetime.date
    end_date: datetime.date
    days_in_period: int
    total_cost: Decimal
    total_calls: int
    total_errors: int
    cost_per_call: Decimal
    error_rate: Decimal
    cost_efficiency_score: Decimal
    projected_monthly_cost: Decimal
    providers: list[ProviderCost]


def period_range(
    analysis_date: datetime.date,
    period_type: PeriodType,
) -> tuple[datetime.date, datetime.date, int]:
    """
    Resolve a period to (start_date, end_date, days_in_period).

    end_date is always the analysis date; days_in_period is the divisor
    for the monthly projection.
    """
    if period_type is PeriodType.DAILY:
        return analysis_date, analysis_date, 1
    if period_type is PeriodType.WEEKLY:
        return analysis_date - datetime.timedelta(days=6), analysis_date, 7

    month_days = calendar.monthrange(analysis_date.year, analysis_date.month)[1]
    return analysis_date.replace(day=1), analysis_date, month_days


def _day_start(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=datetime.timezone.utc)


async def analyze_costs(
    session: AsyncSession,
    analysis_date: datetime.date,
    period_type: PeriodType,
) -> CostAnalysisResult:
    """
    Aggregate usage logs for the period and upsert the analysis row.

    Args:
        session:       Async DB session (caller manages lifecycle).
        analysis_date: Last calendar day of the period.
        period_type:   daily | weekly | monthly.
    """
    start_date, end_date, days_in_period = period_range(analysis_date, period_type)
    logger.info(
        "Running %s cost analysis for %s (%s → %s)",
        period_type.value, analysis_date, start_date, end_date,
    )

    providers = await _aggregate_by_provider(session, start_date, end_date, days_in_period)

    total_cost = sum((p.total_cost for p in providers), _ZERO)
    total_calls = sum(p.total_calls for p in providers)
    total_errors = sum(p.error_count for p in providers)

    if total_calls > 0:
        cost_per_call = total_cost / total_calls
        error_rate = Decimal(total_errors) / total_calls * _HUNDRED
    else:
        cost_per_call = _ZERO
        error_rate = _ZERO

    efficiency = cost_efficiency_score(error_rate, cost_per_call)
    projected_monthly = total_cost / days_in_period * _PROJECTION_DAYS

    result = CostAnalysisResult(
        analysis_date=analysis_date,
        period_type=period_type,
        start_date=start_date,
        end_date=end_date,
        days_in_period=days_in_period,
        total_cost=total_cost,
        total_calls=total_calls,
        total_errors=total_errors,
        cost_per_call=cost_per_call,
        error_rate=error_rate,
        cost_efficiency_score=efficiency,
        projected_monthly_cost=projected_monthly,
        providers=providers,
    )

    await _upsert_analysis(session, result)
    await session.commit()
    logger.info(
        "Cost analysis for %s (%s) committed ✓ total=$%s calls=%d",
        analysis_date, period_type.value, total_cost, total_calls,
    )
    return result


# ── Internal helpers ────────────────────────────────────────

async def _aggregate_by_provider(
    session: AsyncSession,
    start_date: datetime.date,
    end_date: datetime.date,
    days_in_period: int,
) -> list[ProviderCost]:
    """
    SQL: SELECT k.service_provider, SUM(cost), COUNT(*), SUM(failed), SUM(rt)
         FROM api_usage_logs l JOIN api_keys k ON k.id = l.api_key_id
         WHERE l.timestamp in [start, end + 1 day) AND k.status = 'active'
         GROUP BY k.service_provider
    """
    window_start = _day_start(start_date)
    window_end = _day_start(end_date + datetime.timedelta(days=1))

    stmt = (
        select(
            ApiKey.service_provider.label("provider"),
            func.sum(UsageLog.cost_amount).label("total_cost"),
            func.count().label("total_calls"),
            func.sum(case((UsageLog.success.is_(False), 1), else_=0)).label("error_count"),
            func.sum(UsageLog.response_time_ms).label("total_response_time_ms"),
        )
        .select_from(UsageLog)
        .join(ApiKey, ApiKey.id == UsageLog.api_key_id)
        .where(
            UsageLog.timestamp >= window_start,
            UsageLog.timestamp < window_end,
            ApiKey.status == KeyStatus.ACTIVE.value,
        )
        .group_by(ApiKey.service_provider)
        .order_by(ApiKey.service_provider)
    )

    rows = (await session.execute(stmt)).all()

    providers = []
    for row in rows:
        cost = Decimal(str(row.total_cost or 0))
        providers.append(
            ProviderCost(
                provider=row.provider,
                total_cost=cost,
                total_calls=int(row.total_calls),
                error_count=int(row.error_count or 0),
                total_response_time_ms=int(row.total_response_time_ms or 0),
                projected_monthly_cost=cost / days_in_period * _PROJECTION_DAYS,
            )
        )
    return providers


async def _upsert_analysis(session: AsyncSession, result: CostAnalysisResult) -> None:
    """INSERT … ON CONFLICT (analysis_date, period_type) DO UPDATE."""
    values = {
        "total_cost": result.total_cost,
        "total_calls": result.total_calls,
        "total_errors": result.total_errors,
        "cost_per_call": result.cost_per_call,
        "cost_efficiency_score": result.cost_efficiency_score,
        "projected_monthly_cost": result.projected_monthly_cost,
        "provider_breakdown": {p.provider: p.as_json() for p in result.providers},
    }

    upsert = dialect_insert(session, CostAnalysis).values(
        analysis_date=result.analysis_date,
        period_type=result.period_type.value,
        **values,
    ).on_conflict_do_update(
        index_elements=["analysis_date", "period_type"],
        set_={**values, "updated_at": func.now()},
    )
    await session.execute(upsert)
