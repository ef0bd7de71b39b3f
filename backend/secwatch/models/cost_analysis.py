"""
SQLAlchemy model for the `api_cost_analysis` table.

Derived from api_usage_logs and reproducible — the usage logs remain the
source of truth.

Design notes:
  • The composite primary key (analysis_date, period_type) makes
    INSERT … ON CONFLICT idempotent by construction: re-running an
    analysis for the same period overwrites instead of duplicating.
  • provider_breakdown holds per-provider totals as JSON with Decimal
    amounts serialized as strings.
  • updated_at tracks when the analysis was last refreshed.
"""

import datetime
from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base
from secwatch.models.enums import PeriodType, sql_in


class CostAnalysis(Base):
    """
    Aggregated cost metrics for one analysis period.

    PK: (analysis_date, period_type)
    """

    __tablename__ = "api_cost_analysis"

    analysis_date: Mapped[datetime.date] = mapped_column(
        Date, primary_key=True,
    )
    period_type: Mapped[str] = mapped_column(
        String(10), primary_key=True,
    )
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(14, 8), nullable=False,
    )
    total_calls: Mapped[int] = mapped_column(
        Integer, nullable=False,
    )
    total_errors: Mapped[int] = mapped_column(
        Integer, nullable=False,
    )
    cost_per_call: Mapped[Decimal] = mapped_column(
        Numeric(14, 8), nullable=False,
    )
    cost_efficiency_score: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False,
    )
    projected_monthly_cost: Mapped[Decimal] = mapped_column(
        Numeric(14, 8), nullable=False,
    )
    provider_breakdown: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            sql_in("period_type", PeriodType),
            name="ck_api_cost_analysis_period_valid",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<CostAnalysis {self.analysis_date} {self.period_type} "
            f"total=${self.total_cost}>"
        )
