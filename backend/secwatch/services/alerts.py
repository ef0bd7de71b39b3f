"""
Deduplicating alert manager.

DEDUPLICATION:
  alert_hash = sha256(alert_type | scope | calendar date), stored under a
  UNIQUE constraint. Inserting a second alert for the same condition on
  the same day fails at the database, and that failure is reported as
  created=False — never raised to the caller. This holds across
  processes: the anomaly analyzer and a scheduled check racing each
  other still produce exactly one row.

Sources of alerts:
  • security_breach — any risk score above BREACH_RISK_THRESHOLD (hard,
    not configurable per call)
  • key_expiry     — see services/key_expiry.py
  • cost_threshold — provider projections above the sum of key budgets
"""

from __future__ import annotations

import datetime
import hashlib
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.models.alert import Alert
from secwatch.models.api_key import ApiKey
from secwatch.models.enums import AlertType, KeyStatus, Severity
from secwatch.services.cost_analyzer import CostAnalysisResult
from secwatch.services.scoring import BREACH_RISK_THRESHOLD, Anomaly

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AlertSpec:
    """Everything needed to raise one alert.

    Attributes:
        dedup_scope: Overrides the scope used in the alert hash when the
                     alert is tied to neither a key nor a provider.
    """

    alert_type: AlertType
    severity: Severity
    title: str
    message: str
    api_key_id: uuid.UUID | None = None
    service_provider: str | None = None
    threshold_value: Decimal | float | int | None = None
    actual_value: Decimal | float | int | None = None
    dedup_scope: str | None = None

    @property
    def scope(self) -> str:
        if self.api_key_id is not None:
            return str(self.api_key_id)
        if self.service_provider:
            return self.service_provider
        return self.dedup_scope or "global"


@dataclass(frozen=True, slots=True)
class AlertResult:
    created: bool
    alert_hash: str


def compute_alert_hash(
    alert_type: AlertType,
    scope: str,
    day: datetime.date,
) -> str:
    """Deterministic dedup key: one alert per (type, scope, calendar day)."""
    raw = f"{alert_type.value}|{scope}|{day.isoformat()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _to_decimal(value: Decimal | float | int | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


async def create_alert(
    session: AsyncSession,
    spec: AlertSpec,
    today: datetime.date | None = None,
) -> AlertResult:
    """
    Insert an alert unless one already exists for this condition today.

    Commits on its own; callers must not hold pending changes they
    still need (a duplicate triggers a rollback).

    Raises:
        IntegrityError: Only when the failure is NOT an alert_hash
                        collision (e.g. an unknown api_key_id).
    """
    day = today or datetime.datetime.now(datetime.timezone.utc).date()
    alert_hash = compute_alert_hash(spec.alert_type, spec.scope, day)

    session.add(
        Alert(
            alert_type=spec.alert_type.value,
            severity=spec.severity.value,
            api_key_id=spec.api_key_id,
            service_provider=spec.service_provider,
            title=spec.title,
            message=spec.message,
            threshold_value=_to_decimal(spec.threshold_value),
            actual_value=_to_decimal(spec.actual_value),
            alert_hash=alert_hash,
        )
    )

    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        existing = await session.execute(
            select(Alert.id).where(Alert.alert_hash == alert_hash)
        )
        if existing.scalar_one_or_none() is None:
            raise
        logger.info(
            "Alert %s for %s already raised on %s — skipped",
            spec.alert_type.value, spec.scope, day,
        )
        return AlertResult(created=False, alert_hash=alert_hash)

    logger.info(
        "Alert created: type=%s severity=%s scope=%s",
        spec.alert_type.value, spec.severity.value, spec.scope,
    )
    return AlertResult(created=True, alert_hash=alert_hash)


# ── Security breach ─────────────────────────────────────────
async def raise_security_breach(
    session: AsyncSession,
    *,
    risk_score: float,
    severity: Severity,
    title: str,
    description: str,
    api_key_id: uuid.UUID | None = None,
    dedup_scope: str | None = None,
) -> AlertResult | None:
    """
    Raise a security_breach alert when risk_score exceeds the threshold.

    Returns None when the score is at or below the threshold.
    """
    if risk_score <= BREACH_RISK_THRESHOLD:
        return None

    spec = AlertSpec(
        alert_type=AlertType.SECURITY_BREACH,
        severity=severity,
        api_key_id=api_key_id,
        title=f"High Risk Security Event: {title}",
        message=f"Risk score: {risk_score:g}/100. {description}",
        threshold_value=BREACH_RISK_THRESHOLD,
        actual_value=risk_score,
        dedup_scope=dedup_scope,
    )
    return await create_alert(session, spec)


async def raise_for_risk(
    session: AsyncSession,
    anomaly: Anomaly,
) -> AlertResult | None:
    """Alert on a usage anomaly whose risk score crosses the breach threshold."""
    return await raise_security_breach(
        session,
        risk_score=anomaly.risk_score,
        severity=anomaly.severity,
        title=anomaly.type.value,
        description=anomaly.description,
        api_key_id=anomaly.key_id,
    )


# ── Cost thresholds ─────────────────────────────────────────
async def check_cost_thresholds(
    session: AsyncSession,
    analysis: CostAnalysisResult,
) -> list[AlertResult]:
    """
    Compare each provider's projected monthly cost against the summed
    monthly budgets of its active keys. Providers without any budgeted
    key are never alerted on.
    """
    stmt = (
        select(
            ApiKey.service_provider,
            func.sum(ApiKey.cost_limit_monthly).label("monthly_limit"),
        )
        .where(
            ApiKey.status == KeyStatus.ACTIVE.value,
            ApiKey.cost_limit_monthly.is_not(None),
        )
        .group_by(ApiKey.service_provider)
    )
    limits = {
        row.service_provider: Decimal(str(row.monthly_limit))
        for row in (await session.execute(stmt)).all()
    }

    results: list[AlertResult] = []
    for provider in analysis.providers:
        limit = limits.get(provider.provider)
        if limit is None or provider.projected_monthly_cost <= limit:
            continue

        projected = provider.projected_monthly_cost.quantize(Decimal("0.01"))
        spec = AlertSpec(
            alert_type=AlertType.COST_THRESHOLD,
            severity=Severity.HIGH,
            service_provider=provider.provider,
            title=f"Projected Monthly Cost Over Budget: {provider.provider}",
            message=(
                f"Projected monthly cost ${projected} for {provider.provider} "
                f"exceeds the ${limit} budget "
                f"({analysis.period_type.value} analysis of {analysis.analysis_date})."
            ),
            threshold_value=limit,
            actual_value=projected,
        )
        results.append(await create_alert(session, spec))

    return results
