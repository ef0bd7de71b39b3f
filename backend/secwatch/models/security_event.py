"""
SQLAlchemy model for the `security_events` table.

Written by the ingest endpoint (client-side signals) and by the anomaly
analyzer (usage anomalies). Rows are immutable once written; retention
is enforced by an external purge, which is why `created_at` is indexed
for range deletes and range queries.

Only PII-safe data lands here: payloads are sanitized, IPs and user
agents are salted hashes.
"""

import datetime
import uuid
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base
from secwatch.models.enums import SecurityEventType, Severity, sql_in


class SecurityEvent(Base):
    """One sanitized security signal or detected anomaly."""

    __tablename__ = "security_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)

    payload: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
    risk_score: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )

    # ── Attribution (all optional, all PII-safe) ────────────
    api_key_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("api_keys.id", ondelete="SET NULL"),
        nullable=True,
    )
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    route: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            sql_in("event_type", SecurityEventType),
            name="ck_security_events_type_valid",
        ),
        CheckConstraint(
            sql_in("severity", Severity),
            name="ck_security_events_severity_valid",
        ),
        Index("ix_security_events_created_at", "created_at"),
        Index("ix_security_events_event_type", "event_type"),
        Index("ix_security_events_severity", "severity"),
    )

    def __repr__(self) -> str:
        return (
            f"<SecurityEvent id={self.id!s:.8} type={self.event_type} "
            f"severity={self.severity}>"
        )
