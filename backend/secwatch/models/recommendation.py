"""
SQLAlchemy model for the `api_optimization_recommendations` table.

Written by the recommendations job, one row per recommendation per run;
earlier runs are kept so a dashboard can show how advice changed over
time. Rows are scoped to a single key (api_key_id set) or to a whole
provider (api_key_id NULL).
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
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from secwatch.core.database import Base
from secwatch.models.enums import ImplementationEffort, RecommendationCategory, sql_in


class OptimizationRecommendation(Base):
    """One cost / performance recommendation for a key or provider."""

    __tablename__ = "api_optimization_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    api_key_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        nullable=True,
    )
    service_provider: Mapped[str] = mapped_column(String(50), nullable=False)

    category: Mapped[str] = mapped_column(String(20), nullable=False)
    # 1 = most urgent
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Expected benefit ────────────────────────────────────
    potential_cost_savings: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 4), nullable=True,
    )
    potential_performance_gain: Mapped[Decimal | None] = mapped_column(
        Numeric(6, 2), nullable=True,
    )

    implementation_effort: Mapped[str] = mapped_column(String(10), nullable=False)
    implementation_steps: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            sql_in("category", RecommendationCategory),
            name="ck_api_optimization_recommendations_category_valid",
        ),
        CheckConstraint(
            sql_in("implementation_effort", ImplementationEffort),
            name="ck_api_optimization_recommendations_effort_valid",
        ),
        Index("ix_api_optimization_recommendations_provider", "service_provider", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<OptimizationRecommendation {self.service_provider} "
            f"{self.category} p{self.priority}>"
        )
