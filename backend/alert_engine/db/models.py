from __future__ import annotations

import os
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from alert_engine.db.base import Base


class AlertPriority(str, Enum):
    urgent = "urgent"
    high = "high"
    normal = "normal"
    low = "low"


PRIORITY_RANK = {
    AlertPriority.urgent.value: 0,
    AlertPriority.high.value: 1,
    AlertPriority.normal.value: 2,
    AlertPriority.low.value: 3,
}


class AlertChannel(str, Enum):
    push = "push"
    in_app = "in_app"
    email = "email"


class Recurrence(str, Enum):
    daily = "daily"
    weekly = "weekly"
    custom = "custom"


class ScheduledAlertStatus(str, Enum):
    pending = "pending"
    queued = "queued"
    sent = "sent"
    cancelled = "cancelled"
    expired = "expired"


OPEN_SCHEDULED_STATUSES = (
    ScheduledAlertStatus.pending.value,
    ScheduledAlertStatus.queued.value,
)


class AlertHistoryStatus(str, Enum):
    sent = "sent"
    delivered = "delivered"
    failed = "failed"


class TrackingAction(str, Enum):
    delivered = "delivered"
    read = "read"
    clicked = "clicked"
    dismissed = "dismissed"


class SubscriptionPlatform(str, Enum):
    web = "web"
    ios = "ios"
    android = "android"


JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")
JSON_EMPTY_DEFAULT = (
    text("'{}'::jsonb")
    if os.getenv("DATABASE_URL", "").startswith("postgresql")
    else text("'{}'")
)


class AlertType(Base):
    __tablename__ = "alert_types"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    default_channel: Mapped[str] = mapped_column(
        String(32), nullable=False, default=AlertChannel.push.value
    )
    default_priority: Mapped[str] = mapped_column(
        String(32), nullable=False, default=AlertPriority.normal.value
    )
    default_cooldown_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    premium_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class UserAlertPreference(Base):
    __tablename__ = "user_alert_preferences"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "alert_type_id", name="uq_user_alert_preferences_user_type"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    alert_type_id: Mapped[str] = mapped_column(
        ForeignKey("alert_types.id", ondelete="CASCADE"), nullable=False
    )
    enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    channel: Mapped[str | None] = mapped_column(String(32), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(32), nullable=True)
    quiet_start: Mapped[str | None] = mapped_column(String(5), nullable=True)
    quiet_end: Mapped[str | None] = mapped_column(String(5), nullable=True)
    cooldown_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    alert_type: Mapped[AlertType] = relationship()


class ScheduledAlert(Base):
    __tablename__ = "scheduled_alerts"
    __table_args__ = (
        Index("ix_scheduled_alerts_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_scheduled_alerts_user_status", "user_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    alert_type_id: Mapped[str] = mapped_column(
        ForeignKey("alert_types.id", ondelete="CASCADE"), nullable=False
    )
    priority: Mapped[str] = mapped_column(String(32), nullable=False)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    recurrence: Mapped[str | None] = mapped_column(String(16), nullable=True)
    recurrence_rule: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON_TYPE, nullable=False, server_default=JSON_EMPTY_DEFAULT
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ScheduledAlertStatus.pending.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    alert_type: Mapped[AlertType] = relationship()


class AlertHistory(Base):
    __tablename__ = "alert_history"
    __table_args__ = (
        Index("ix_alert_history_user_type_sent", "user_id", "alert_type_id", "sent_at"),
        Index("ix_alert_history_user_sent", "user_id", "sent_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    alert_type_id: Mapped[str] = mapped_column(
        ForeignKey("alert_types.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_alert_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("scheduled_alerts.id", ondelete="SET NULL"), nullable=True
    )
    priority: Mapped[str] = mapped_column(String(32), nullable=False)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON_TYPE, nullable=False, server_default=JSON_EMPTY_DEFAULT
    )
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    clicked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dismissed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class AlertSendLock(Base):
    __tablename__ = "alert_send_locks"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    alert_type_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    lock_token: Mapped[str] = mapped_column(String(64), nullable=False)
    locked_until: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint("endpoint", name="uq_push_subscriptions_endpoint"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SubscriptionPlatform.web.value
    )
    endpoint: Mapped[str | None] = mapped_column(Text, nullable=True)
    p256dh: Mapped[str | None] = mapped_column(Text, nullable=True)
    auth: Mapped[str | None] = mapped_column(Text, nullable=True)
    native_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    morning_reminder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    checkpoint_alerts: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    evening_reminder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    streak_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    weekly_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
