"""
SQLAlchemy model for the `api_usage_logs` table.

Each row represents a single upstream API call — treated as a financial
transaction, not a throwaway log entry. Append-only: owned by whichever
component performs the upstream call; the analyzers only read it.

Design notes:
  • cost_amount uses NUMERIC(12,8) — exact decimal arithmetic, no float rounding.
  • source_ip is optional; the IP-diversity rule ignores rows without one.
  • Indexes on timestamp and api_key_id support the windowed GROUP BY
    queries of the cost and anomaly analyzers.
"""

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base


class UsageLog(Base):
    """One upstream API call."""

    __tablename__ = "api_usage_logs"

    # ── Primary key ─────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Owning key ──────────────────────────────────────────
    api_key_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        nullable=False,
    )

    # ── Timestamp ───────────────────────────────────────────
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Outcome ─────────────────────────────────────────────
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    cost_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 8),
        nullable=False,
        default=Decimal("0"),
    )
    response_time_ms: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # ── Call metadata ───────────────────────────────────────
    source_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ── Table-level constraints ─────────────────────────────
    __table_args__ = (
        CheckConstraint("cost_amount >= 0", name="ck_usage_cost_non_neg"),
        CheckConstraint("response_time_ms >= 0", name="ck_usage_response_time_non_neg"),
        Index("ix_api_usage_logs_timestamp", "timestamp"),
        Index("ix_api_usage_logs_api_key_id", "api_key_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageLog id={self.id!s:.8} key={self.api_key_id!s:.8} "
            f"success={self.success} cost=${self.cost_amount}>"
        )
