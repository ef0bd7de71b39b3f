"""create telemetry tables

Revision ID: 0001
Revises:
Create Date: 2026-10-12
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SEVERITIES = "'low', 'medium', 'high', 'critical'"
EVENT_TYPES = (
    "'rate_limit_exceeded', 'csp_violation', 'auth_anomaly', 'rls_denial', "
    "'error_burst', 'suspicious_ip', 'admin_action', 'payment_fraud', "
    "'data_export', 'unauthorized_access', 'unusual_frequency', "
    "'high_error_rate', 'distributed_requests', 'high_cost_requests'"
)
ALERT_TYPES = (
    "'usage_threshold', 'cost_threshold', 'error_rate', 'response_time', "
    "'rate_limit', 'security_breach', 'key_expiry', 'service_outage', "
    "'unusual_activity', 'quota_exceeded'"
)


def upgrade() -> None:
    # ── api_keys ────────────────────────────────────────────
    op.create_table(
        "api_keys",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("service_provider", sa.String(50), nullable=False),
        sa.Column("service_name", sa.String(100), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            server_default="active",
            nullable=False,
        ),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cost_limit_monthly", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('active', 'revoked', 'expired')",
            name="ck_api_keys_status_valid",
        ),
    )
    op.create_index("ix_api_keys_service_provider", "api_keys", ["service_provider"])
    op.create_index("ix_api_keys_expires_at", "api_keys", ["expires_at"])

    # ── api_usage_logs ──────────────────────────────────────
    op.create_table(
        "api_usage_logs",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("api_key_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "timestamp",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("cost_amount", sa.Numeric(12, 8), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=False),
        sa.Column("source_ip", sa.String(45), nullable=True),
        sa.Column("endpoint", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["api_key_id"], ["api_keys.id"], ondelete="CASCADE"
        ),
        sa.CheckConstraint("cost_amount >= 0", name="ck_usage_cost_non_neg"),
        sa.CheckConstraint(
            "response_time_ms >= 0", name="ck_usage_response_time_non_neg"
        ),
    )
    op.create_index("ix_api_usage_logs_timestamp", "api_usage_logs", ["timestamp"])
    op.create_index("ix_api_usage_logs_api_key_id", "api_usage_logs", ["api_key_id"])

    # ── security_events ─────────────────────────────────────
    op.create_table(
        "security_events",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("source", sa.String(100), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("risk_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("api_key_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ip_hash", sa.String(64), nullable=True),
        sa.Column("user_agent_hash", sa.String(64), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("route", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["api_key_id"], ["api_keys.id"], ondelete="SET NULL"
        ),
        sa.CheckConstraint(
            f"event_type IN ({EVENT_TYPES})",
            name="ck_security_events_type_valid",
        ),
        sa.CheckConstraint(
            f"severity IN ({SEVERITIES})",
            name="ck_security_events_severity_valid",
        ),
    )
    op.create_index("ix_security_events_created_at", "security_events", ["created_at"])
    op.create_index("ix_security_events_event_type", "security_events", ["event_type"])
    op.create_index("ix_security_events_severity", "security_events", ["severity"])

    # ── api_cost_analysis ───────────────────────────────────
    op.create_table(
        "api_cost_analysis",
        sa.Column("analysis_date", sa.Date(), nullable=False),
        sa.Column("period_type", sa.String(10), nullable=False),
        sa.Column("total_cost", sa.Numeric(14, 8), nullable=False),
        sa.Column("total_calls", sa.Integer(), nullable=False),
        sa.Column("total_errors", sa.Integer(), nullable=False),
        sa.Column("cost_per_call", sa.Numeric(14, 8), nullable=False),
        sa.Column("cost_efficiency_score", sa.Numeric(6, 2), nullable=False),
        sa.Column("projected_monthly_cost", sa.Numeric(14, 8), nullable=False),
        sa.Column(
            "provider_breakdown",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("analysis_date", "period_type"),
        sa.CheckConstraint(
            "period_type IN ('daily', 'weekly', 'monthly')",
            name="ck_api_cost_analysis_period_valid",
        ),
    )

    # ── api_alerts ──────────────────────────────────────────
    op.create_table(
        "api_alerts",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("alert_type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("api_key_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("service_provider", sa.String(50), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("threshold_value", sa.Numeric(14, 4), nullable=True),
        sa.Column("actual_value", sa.Numeric(14, 4), nullable=True),
        sa.Column("alert_hash", sa.String(64), nullable=False),
        sa.Column(
            "is_active", sa.Boolean(), server_default="true", nullable=False
        ),
        sa.Column(
            "is_acknowledged", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["api_key_id"], ["api_keys.id"], ondelete="CASCADE"
        ),
        sa.UniqueConstraint("alert_hash", name="uq_api_alerts_alert_hash"),
        sa.CheckConstraint(
            f"alert_type IN ({ALERT_TYPES})",
            name="ck_api_alerts_type_valid",
        ),
        sa.CheckConstraint(
            f"severity IN ({SEVERITIES})",
            name="ck_api_alerts_severity_valid",
        ),
    )
    op.create_index("ix_api_alerts_active", "api_alerts", ["is_active"])


def downgrade() -> None:
    op.drop_index("ix_api_alerts_active", table_name="api_alerts")
    op.drop_table("api_alerts")

    op.drop_table("api_cost_analysis")

    op.drop_index("ix_security_events_severity", table_name="security_events")
    op.drop_index("ix_security_events_event_type", table_name="security_events")
    op.drop_index("ix_security_events_created_at", table_name="security_events")
    op.drop_table("security_events")

    op.drop_index("ix_api_usage_logs_api_key_id", table_name="api_usage_logs")
    op.drop_index("ix_api_usage_logs_timestamp", table_name="api_usage_logs")
    op.drop_table("api_usage_logs")

    op.drop_index("ix_api_keys_expires_at", table_name="api_keys")
    op.drop_index("ix_api_keys_service_provider", table_name="api_keys")
    op.drop_table("api_keys")
