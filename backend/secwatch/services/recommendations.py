"""
Optimization recommendations from the last 30 days of usage.

For one key (or every key of one provider) the usage logs are reduced
to per-day totals, then averaged over the days that saw traffic:

  average daily cost       > $10     → cost,        priority 1,
                                        savings = 30% of 30 days of spend
  average daily error rate > 5%      → performance, priority 2, gain 15%
  average response time    > 2000 ms → performance, priority 3, gain 40%

Thresholds are fixed heuristics. Every run stores what it produces;
rows from earlier runs are left in place as history.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import Date, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.models.api_key import ApiKey
from secwatch.models.enums import ImplementationEffort, RecommendationCategory
from secwatch.models.recommendation import OptimizationRecommendation
from secwatch.models.usage_log import UsageLog

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 30

HIGH_DAILY_COST = Decimal("10")
HIGH_ERROR_RATE = 5.0           # percent
SLOW_RESPONSE_MS = 2000.0

COST_SAVINGS_SHARE = Decimal("0.3")
SAVINGS_HORIZON_DAYS = 30
ERROR_FIX_GAIN = Decimal("15")
LATENCY_FIX_GAIN = Decimal("40")

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class UsageProfile:
    """Per-day averages over the days with at least one call."""

    days_analyzed: int
    avg_daily_cost: Decimal
    avg_error_rate: float
    avg_response_time_ms: float


@dataclass(slots=True)
class RecommendationReport:
    api_key_id: uuid.UUID | None
    service_provider: str | None
    profile: UsageProfile | None
    recommendations: list[OptimizationRecommendation] = field(default_factory=list)

    @property
    def days_analyzed(self) -> int:
        return self.profile.days_analyzed if self.profile else 0

    @property
    def generated_count(self) -> int:
        return len(self.recommendations)


def recommend(
    profile: UsageProfile,
    service_provider: str,
    api_key_id: uuid.UUID | None = None,
) -> list[OptimizationRecommendation]:
    """Apply the threshold rules to a usage profile (no I/O)."""
    found: list[OptimizationRecommendation] = []

    if profile.avg_daily_cost > HIGH_DAILY_COST:
        found.append(
            OptimizationRecommendation(
                api_key_id=api_key_id,
                service_provider=service_provider,
                category=RecommendationCategory.COST.value,
                priority=1,
                title="High Daily API Costs Detected",
                description=(
                    f"Average daily cost of ${profile.avg_daily_cost:.2f} is above "
                    "recommended threshold. Consider implementing caching or "
                    "optimizing API calls."
                ),
                potential_cost_savings=(
                    profile.avg_daily_cost * COST_SAVINGS_SHARE * SAVINGS_HORIZON_DAYS
                ),
                implementation_effort=ImplementationEffort.MEDIUM.value,
                implementation_steps=[
                    "Implement response caching for frequently requested data",
                    "Batch API requests where possible",
                    "Review and optimize query parameters",
                    "Set up rate limiting to prevent excessive usage",
                ],
            )
        )

    if profile.avg_error_rate > HIGH_ERROR_RATE:
        found.append(
            OptimizationRecommendation(
                api_key_id=api_key_id,
                service_provider=service_provider,
                category=RecommendationCategory.PERFORMANCE.value,
                priority=2,
                title="High Error Rate Detected",
                description=(
                    f"Average error rate of {profile.avg_error_rate:.1f}% indicates "
                    "reliability issues. Implement retry logic and error handling."
                ),
                potential_performance_gain=ERROR_FIX_GAIN,
                implementation_effort=ImplementationEffort.LOW.value,
                implementation_steps=[
                    "Implement exponential backoff retry logic",
                    "Add comprehensive error handling",
                    "Monitor and alert on error spikes",
                    "Review API usage patterns causing errors",
                ],
            )
        )

    if profile.avg_response_time_ms > SLOW_RESPONSE_MS:
        found.append(
            OptimizationRecommendation(
                api_key_id=api_key_id,
                service_provider=service_provider,
                category=RecommendationCategory.PERFORMANCE.value,
                priority=3,
                title="Slow API Response Times",
                description=(
                    f"Average response time of {profile.avg_response_time_ms:.0f}ms is "
                    "above optimal threshold. Consider optimization strategies."
                ),
                potential_performance_gain=LATENCY_FIX_GAIN,
                implementation_effort=ImplementationEffort.MEDIUM.value,
                implementation_steps=[
                    "Optimize API request payloads",
                    "Implement request timeouts",
                    "Use CDN for static content",
                    "Consider parallel request processing",
                ],
            )
        )

    return found


async def generate_recommendations(
    session: AsyncSession,
    api_key_id: uuid.UUID | None = None,
    service_provider: str | None = None,
    today: datetime.date | None = None,
) -> RecommendationReport:
    """
    Build and store recommendations for one key or one provider.

    api_key_id wins when both are given. An unknown key, or a scope with
    no usage in the window, yields an empty report and writes nothing.
    """
    if api_key_id is None and not service_provider:
        raise ValueError("api_key_id or service_provider is required")

    today = today or datetime.datetime.now(datetime.timezone.utc).date()

    if api_key_id is not None:
        service_provider = (
            await session.execute(
                select(ApiKey.service_provider).where(ApiKey.id == api_key_id)
            )
        ).scalar_one_or_none()
        if service_provider is None:
            logger.info("Recommendations skipped: unknown api key %s", api_key_id)
            return RecommendationReport(api_key_id, None, None)

    profile = await _usage_profile(session, api_key_id, service_provider, today)
    report = RecommendationReport(api_key_id, service_provider, profile)
    if profile is None:
        return report

    report.recommendations = recommend(profile, service_provider, api_key_id)
    if report.recommendations:
        session.add_all(report.recommendations)
        await session.commit()

    logger.info(
        "Generated %d recommendation(s) for %s over %d day(s)",
        report.generated_count,
        api_key_id or service_provider,
        profile.days_analyzed,
    )
    return report


async def _usage_profile(
    session: AsyncSession,
    api_key_id: uuid.UUID | None,
    service_provider: str,
    today: datetime.date,
) -> UsageProfile | None:
    """
    SQL: SELECT date(l.timestamp), SUM(cost), COUNT(*), SUM(failed), AVG(rt)
         FROM api_usage_logs l JOIN api_keys k ON k.id = l.api_key_id
         WHERE <scope> AND l.timestamp in [today - 30, today + 1)
         GROUP BY date(l.timestamp)
    """
    window_start = datetime.datetime.combine(
        today - datetime.timedelta(days=LOOKBACK_DAYS),
        datetime.time.min,
        tzinfo=datetime.timezone.utc,
    )
    window_end = datetime.datetime.combine(
        today + datetime.timedelta(days=1),
        datetime.time.min,
        tzinfo=datetime.timezone.utc,
    )
    usage_day = func.date(UsageLog.timestamp, type_=Date)

    stmt = (
        select(
            usage_day.label("usage_day"),
            func.sum(UsageLog.cost_amount).label("total_cost"),
            func.count().label("total_calls"),
            func.sum(case((UsageLog.success.is_(False), 1), else_=0)).label("error_count"),
            func.avg(UsageLog.response_time_ms).label("avg_response_time_ms"),
        )
        .select_from(UsageLog)
        .join(ApiKey, ApiKey.id == UsageLog.api_key_id)
        .where(
            UsageLog.timestamp >= window_start,
            UsageLog.timestamp < window_end,
        )
        .group_by(usage_day)
    )
    if api_key_id is not None:
        stmt = stmt.where(UsageLog.api_key_id == api_key_id)
    else:
        stmt = stmt.where(ApiKey.service_provider == service_provider)

    days = (await session.execute(stmt)).all()
    if not days:
        return None

    n = len(days)
    total_cost = sum((Decimal(str(d.total_cost or 0)) for d in days), _ZERO)
    error_rates = sum(int(d.error_count or 0) / int(d.total_calls) * 100 for d in days)
    response_times = sum(float(d.avg_response_time_ms or 0) for d in days)

    return UsageProfile(
        days_analyzed=n,
        avg_daily_cost=total_cost / n,
        avg_error_rate=error_rates / n,
        avg_response_time_ms=response_times / n,
    )
