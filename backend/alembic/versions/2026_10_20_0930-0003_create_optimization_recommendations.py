"""create api_optimization_recommendations table

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-20
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0003"
down_revision: Union[str, None] = "0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "api_optimization_recommendations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("api_key_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("service_provider", sa.String(50), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("potential_cost_savings", sa.Numeric(14, 4), nullable=True),
        sa.Column("potential_performance_gain", sa.Numeric(6, 2), nullable=True),
        sa.Column("implementation_effort", sa.String(10), nullable=False),
        sa.Column(
            "implementation_steps",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["api_key_id"], ["api_keys.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "category IN ('cost', 'performance', 'security', 'usage')",
            name="ck_api_optimization_recommendations_category_valid",
        ),
        sa.CheckConstraint(
            "implementation_effort IN ('low', 'medium', 'high')",
            name="ck_api_optimization_recommendations_effort_valid",
        ),
    )
    op.create_index(
        "ix_api_optimization_recommendations_provider",
        "api_optimization_recommendations",
        ["service_provider", "created_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_api_optimization_recommendations_provider",
        table_name="api_optimization_recommendations",
    )
    op.drop_table("api_optimization_recommendations")
