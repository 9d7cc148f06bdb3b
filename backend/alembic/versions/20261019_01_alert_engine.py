"""alert types, preferences, scheduled alerts, history, send locks, push subscriptions

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "alert_types",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("default_channel", sa.String(length=32), nullable=False, server_default="push"),
        sa.Column("default_priority", sa.String(length=32), nullable=False, server_default="normal"),
        sa.Column("default_cooldown_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("premium_only", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alert_types_category", "alert_types", ["category"], unique=False)

    op.create_table(
        "user_alert_preferences",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("alert_type_id", sa.String(length=64), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=True),
        sa.Column("channel", sa.String(length=32), nullable=True),
        sa.Column("priority", sa.String(length=32), nullable=True),
        sa.Column("quiet_start", sa.String(length=5), nullable=True),
        sa.Column("quiet_end", sa.String(length=5), nullable=True),
        sa.Column("cooldown_minutes", sa.Integer(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["alert_type_id"], ["alert_types.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "alert_type_id", name="uq_user_alert_preferences_user_type"
        ),
    )
    op.create_index(
        "ix_user_alert_preferences_user_id",
        "user_alert_preferences",
        ["user_id"],
        unique=False,
    )

    op.create_table(
        "scheduled_alerts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("alert_type_id", sa.String(length=64), nullable=False),
        sa.Column("priority", sa.String(length=32), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recurrence", sa.String(length=16), nullable=True),
        sa.Column("recurrence_rule", sa.Text(), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["alert_type_id"], ["alert_types.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_alerts_status_scheduled_at",
        "scheduled_alerts",
        ["status", "scheduled_at"],
        unique=False,
    )
    op.create_index(
        "ix_scheduled_alerts_user_status",
        "scheduled_alerts",
        ["user_id", "status"],
        unique=False,
    )

    op.create_table(
        "alert_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("alert_type_id", sa.String(length=64), nullable=False),
        sa.Column("scheduled_alert_id", sa.Uuid(), nullable=True),
        sa.Column("priority", sa.String(length=32), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["alert_type_id"], ["alert_types.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["scheduled_alert_id"], ["scheduled_alerts.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_alert_history_user_type_sent",
        "alert_history",
        ["user_id", "alert_type_id", "sent_at"],
        unique=False,
    )
    op.create_index(
        "ix_alert_history_user_sent",
        "alert_history",
        ["user_id", "sent_at"],
        unique=False,
    )

    op.create_table(
        "alert_send_locks",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("alert_type_id", sa.String(length=64), nullable=False),
        sa.Column("lock_token", sa.String(length=64), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "alert_type_id"),
    )

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("platform", sa.String(length=16), nullable=False, server_default="web"),
        sa.Column("endpoint", sa.Text(), nullable=True),
        sa.Column("p256dh", sa.Text(), nullable=True),
        sa.Column("auth", sa.Text(), nullable=True),
        sa.Column("native_token", sa.Text(), nullable=True),
        sa.Column("morning_reminder", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("checkpoint_alerts", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("evening_reminder", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("streak_alerts", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("weekly_review", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("endpoint", name="uq_push_subscriptions_endpoint"),
    )
    op.create_index(
        "ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_push_subscriptions_user_id", table_name="push_subscriptions")
    op.drop_table("push_subscriptions")
    op.drop_table("alert_send_locks")
    op.drop_index("ix_alert_history_user_sent", table_name="alert_history")
    op.drop_index("ix_alert_history_user_type_sent", table_name="alert_history")
    op.drop_table("alert_history")
    op.drop_index("ix_scheduled_alerts_user_status", table_name="scheduled_alerts")
    op.drop_index("ix_scheduled_alerts_status_scheduled_at", table_name="scheduled_alerts")
    op.drop_table("scheduled_alerts")
    op.drop_index("ix_user_alert_preferences_user_id", table_name="user_alert_preferences")
    op.drop_table("user_alert_preferences")
    op.drop_index("ix_alert_types_category", table_name="alert_types")
    op.drop_table("alert_types")
