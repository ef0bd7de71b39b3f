"""Row builders shared by the database tests."""

import datetime
import uuid
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.models.api_key import ApiKey
from secwatch.models.enums import KeyStatus
from secwatch.models.usage_log import UsageLog

NOW = datetime.datetime(2026, 10, 19, 12, 0, tzinfo=datetime.timezone.utc)


async def make_key(
    session: AsyncSession,
    provider: str = "openai",
    name: str | None = None,
    status: KeyStatus = KeyStatus.ACTIVE,
    expires_at: datetime.datetime | None = None,
    cost_limit_monthly: Decimal | None = None,
) -> uuid.UUID:
    """Insert an ApiKey and return its id (not the instance: rollbacks expire it)."""
    key = ApiKey(
        service_provider=provider,
        service_name=name or f"{provider}-prod",
        status=status.value,
        expires_at=expires_at,
        cost_limit_monthly=cost_limit_monthly,
    )
    session.add(key)
    await session.commit()
    return key.id


async def add_usage(
    session: AsyncSession,
    api_key_id: uuid.UUID,
    count: int = 1,
    *,
    timestamp: datetime.datetime = NOW,
    success: bool = True,
    cost: Decimal = Decimal("0.01"),
    response_time_ms: int = 100,
    source_ips: list[str] | None = None,
) -> None:
    for i in range(count):
        session.add(
            UsageLog(
                api_key_id=api_key_id,
                timestamp=timestamp,
                success=success,
                cost_amount=cost,
                response_time_ms=response_time_ms,
                source_ip=source_ips[i % len(source_ips)] if source_ips else None,
            )
        )
    await session.commit()
