"""
Scan for upstream API keys nearing expiry and raise one alert per key.

Re-running the scan on the same day is safe: alerts are deduplicated by
(key_expiry, key id, date) in the alert manager.
"""

from __future__ import annotations

import datetime
import logging
import math
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.models.api_key import ApiKey
from secwatch.models.enums import AlertType, KeyStatus, Severity
from secwatch.services.alerts import AlertSpec, create_alert

logger = logging.getLogger(__name__)

DEFAULT_DAYS_AHEAD = 30

_SECONDS_PER_DAY = 86_400


@dataclass(frozen=True, slots=True)
class ExpiringKey:
    api_key_id: uuid.UUID
    service_name: str
    days_until_expiry: int
    severity: Severity
    alert_created: bool


@dataclass(frozen=True, slots=True)
class ExpiryScanResult:
    days_ahead: int
    expiring_keys: list[ExpiringKey]

    @property
    def alerts_created(self) -> int:
        return sum(1 for key in self.expiring_keys if key.alert_created)


def expiry_severity(days_until_expiry: int) -> Severity:
    if days_until_expiry <= 7:
        return Severity.HIGH
    if days_until_expiry <= 14:
        return Severity.MEDIUM
    return Severity.LOW


def days_until(expires_at: datetime.datetime, now: datetime.datetime) -> int:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    return math.ceil((expires_at - now).total_seconds() / _SECONDS_PER_DAY)


async def check_key_expiry(
    session: AsyncSession,
    days_ahead: int = DEFAULT_DAYS_AHEAD,
    now: datetime.datetime | None = None,
) -> ExpiryScanResult:
    """Alert on every active key expiring within days_ahead days."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    horizon = now + datetime.timedelta(days=days_ahead)

    # Plain rows, not ORM instances: create_alert may roll back and
    # expire anything the session is tracking.
    stmt = (
        select(
            ApiKey.id,
            ApiKey.service_provider,
            ApiKey.service_name,
            ApiKey.expires_at,
        )
        .where(
            ApiKey.status == KeyStatus.ACTIVE.value,
            ApiKey.expires_at.is_not(None),
            ApiKey.expires_at <= horizon,
        )
        .order_by(ApiKey.expires_at.asc())
    )
    rows = (await session.execute(stmt)).all()

    expiring: list[ExpiringKey] = []
    for row in rows:
        days = days_until(row.expires_at, now)
        severity = expiry_severity(days)
        result = await create_alert(
            session,
            AlertSpec(
                alert_type=AlertType.KEY_EXPIRY,
                severity=severity,
                api_key_id=row.id,
                service_provider=row.service_provider,
                title=f"API Key Expiring Soon: {row.service_name}",
                message=(
                    f"API key for {row.service_name} expires in {days} days "
                    f"({row.expires_at:%Y-%m-%d})"
                ),
                threshold_value=days_ahead,
                actual_value=days,
            ),
            today=now.date(),
        )
        expiring.append(
            ExpiringKey(
                api_key_id=row.id,
                service_name=row.service_name,
                days_until_expiry=days,
                severity=severity,
                alert_created=result.created,
            )
        )

    logger.info(
        "Key expiry scan: %d keys within %d days, %d new alerts",
        len(expiring), days_ahead, sum(1 for k in expiring if k.alert_created),
    )
    return ExpiryScanResult(days_ahead=days_ahead, expiring_keys=expiring)
