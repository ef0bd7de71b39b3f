"""create ingest_rate_limits table

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-14
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ingest_rate_limits",
        sa.Column("client_hash", sa.String(64), nullable=False),
        sa.Column("window_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column(
            "request_count",
            sa.Integer(),
            server_default="0",
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("client_hash", "window_start"),
    )
    # Supports purging stale buckets by time.
    op.create_index(
        "ix_ingest_rate_limits_window_start",
        "ingest_rate_limits",
        ["window_start"],
    )


def downgrade() -> None:
    op.drop_index("ix_ingest_rate_limits_window_start", table_name="ingest_rate_limits")
    op.drop_table("ingest_rate_limits")
