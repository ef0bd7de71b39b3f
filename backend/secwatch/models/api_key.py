"""
Upstream API key registry — one row per third-party credential
(OpenAI, Stripe, Google Maps, …) the platform calls out with.

Security notes:
  • The secret itself is NOT stored here; this table only tracks
    ownership, lifecycle and budget metadata.
  • `status` allows revocation without deletion (audit trail).
  • Usage logs reference keys; the key supplies the service provider
    that cost analysis groups by.
"""

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Index, Numeric, String, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base
from secwatch.models.enums import KeyStatus, sql_in


class ApiKey(Base):
    """A third-party API credential and its lifecycle metadata."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    service_provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    service_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=KeyStatus.ACTIVE.value,
        server_default=KeyStatus.ACTIVE.value,
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Monthly budget for this key; NULL = unlimited.
    cost_limit_monthly: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(sql_in("status", KeyStatus), name="ck_api_keys_status_valid"),
        Index("ix_api_keys_service_provider", "service_provider"),
        Index("ix_api_keys_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ApiKey id={self.id!s:.8} provider={self.service_provider!r} "
            f"status={self.status}>"
        )
