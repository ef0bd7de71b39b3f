"""
SQLAlchemy model for the `api_alerts` table.

The UNIQUE constraint on alert_hash is the only cross-process
coordination in the system: the anomaly analyzer, the expiry scanner
and any scheduled check may run concurrently, and the database —
not application code — guarantees one alert per logical condition
per calendar day.

Alerts are created here and acknowledged / deactivated by an operator
through external tooling.
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
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base
from secwatch.models.enums import AlertType, Severity, sql_in


class Alert(Base):
    """A deduplicated operational or security alert."""

    __tablename__ = "api_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)

    # ── Scope: a single key, or a whole provider ────────────
    api_key_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        nullable=True,
    )
    service_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    threshold_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    actual_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    alert_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )
    is_acknowledged: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(sql_in("alert_type", AlertType), name="ck_api_alerts_type_valid"),
        CheckConstraint(sql_in("severity", Severity), name="ck_api_alerts_severity_valid"),
        UniqueConstraint("alert_hash", name="uq_api_alerts_alert_hash"),
        Index("ix_api_alerts_active", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<Alert id={self.id!s:.8} type={self.alert_type} "
            f"severity={self.severity} active={self.is_active}>"
        )
