"""
Per-client request counters for the telemetry ingest endpoint.

Each row represents the report count for one client (salted IP hash)
in one minute bucket. Composite PK: (client_hash, window_start).

Atomic increments via INSERT … ON CONFLICT DO UPDATE ensure correctness
under concurrent requests without external locks.
"""

import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base


class IngestRateLimit(Base):
    """Per-client, per-minute report counter."""

    __tablename__ = "ingest_rate_limits"

    client_hash: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    window_start: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
    )
    request_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    __table_args__ = (
        Index("ix_ingest_rate_limits_window_start", "window_start"),
    )

    def __repr__(self) -> str:
        return (
            f"<IngestRateLimit client={self.client_hash:.8} "
            f"window={self.window_start:%H:%M} count={self.request_count}>"
        )
