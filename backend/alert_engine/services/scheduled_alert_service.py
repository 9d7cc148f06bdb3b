from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.entitlements import PremiumOracle
from alert_engine.alerts.recurrence import InvalidRecurrenceRule, next_run, parse_rule
from alert_engine.alerts.time_utils import (
    as_utc,
    now_utc,
    parse_iso_datetime,
    resolve_timezone,
)
from alert_engine.db.models import (
    OPEN_SCHEDULED_STATUSES,
    Recurrence,
    ScheduledAlert,
    ScheduledAlertStatus,
)
from alert_engine.services.errors import (
    ForbiddenError,
    LimitExceededError,
    ValidationError,
)
from alert_engine.services.settings_resolver import SettingsResolver

logger = logging.getLogger(__name__)

VALID_RECURRENCES = tuple(item.value for item in Recurrence)


@dataclass(frozen=True)
class ScheduleRequest:
    alert_type_id: str | None
    scheduled_at: str | datetime | None
    title: str | None
    body: str | None
    expires_at: str | datetime | None = None
    recurrence: str | None = None
    recurrence_rule: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


def _parse_date(value: str | datetime, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a valid ISO-8601 date") from exc


class ScheduledAlertService:
    def __init__(
        self,
        config: AlertConfig,
        *,
        premium_oracle: PremiumOracle,
        resolver: SettingsResolver | None = None,
    ) -> None:
        self.config = config
        self.premium_oracle = premium_oracle
        self.resolver = resolver or SettingsResolver(
            default_timezone=config.default_timezone
        )

    def schedule(
        self,
        session: Session,
        *,
        user_id: str,
        request: ScheduleRequest,
        now: datetime | None = None,
    ) -> ScheduledAlert:
        now = as_utc(now or now_utc())

        if not request.alert_type_id:
            raise ValidationError("alert_type_id required")
        if not request.scheduled_at:
            raise ValidationError("scheduled_at required")
        if not request.title or not request.body:
            raise ValidationError("title and body required")

        scheduled_at = _parse_date(request.scheduled_at, "scheduled_at")
        if scheduled_at <= now:
            raise ValidationError("scheduled_at must be a valid future date")

        expires_at = None
        if request.expires_at:
            expires_at = _parse_date(request.expires_at, "expires_at")
            if expires_at <= scheduled_at:
                raise ValidationError("expires_at must be after scheduled_at")

        recurrence = request.recurrence or None
        if recurrence is not None and recurrence not in VALID_RECURRENCES:
            raise ValidationError(
                f"Invalid recurrence. Use: {', '.join(VALID_RECURRENCES)}"
            )

        recurrence_rule = None
        if recurrence == Recurrence.custom.value:
            try:
                parse_rule(request.recurrence_rule)
            except InvalidRecurrenceRule as exc:
                raise ValidationError(str(exc)) from exc
            recurrence_rule = request.recurrence_rule.strip()

        settings = self.resolver.resolve(
            session, user_id=user_id, alert_type_id=request.alert_type_id
        )

        if settings.premium_only and not self.premium_oracle.is_premium_user(user_id):
            raise ForbiddenError(
                "Premium subscription required", code="PREMIUM_REQUIRED"
            )

        pending_count = self.count_open(session, user_id=user_id)
        if pending_count >= self.config.max_pending_per_user:
            raise LimitExceededError(
                f"Maximum {self.config.max_pending_per_user} pending alerts allowed"
            )

        next_run_at = None
        if recurrence is not None:
            try:
                next_run_at = as_utc(
                    next_run(
                        recurrence,
                        recurrence_rule,
                        scheduled_at,
                        timezone=resolve_timezone(
                            settings.timezone, self.config.default_timezone
                        ),
                    )
                )
            except OverflowError as exc:
                raise ValidationError(
                    "recurrence produces a next run outside the supported date range"
                ) from exc

        scheduled = ScheduledAlert(
            user_id=user_id,
            alert_type_id=settings.alert_type_id,
            priority=settings.priority,
            channel=settings.channel,
            scheduled_at=scheduled_at,
            expires_at=expires_at,
            recurrence=recurrence,
            recurrence_rule=recurrence_rule,
            next_run_at=next_run_at,
            title=request.title,
            body=request.body,
            data=request.data or {},
            status=ScheduledAlertStatus.pending.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        session.add(scheduled)
        session.commit()

        logger.info(
            "scheduled_alert_created",
            extra={
                "user_id": user_id,
                "alert_type_id": settings.alert_type_id,
                "scheduled_alert_id": str(scheduled.id),
                "recurrence": recurrence,
            },
        )
        return scheduled

    def count_open(self, session: Session, *, user_id: str) -> int:
        stmt = select(func.count(ScheduledAlert.id)).where(
            ScheduledAlert.user_id == user_id,
            ScheduledAlert.status.in_(OPEN_SCHEDULED_STATUSES),
        )
        return int(session.scalar(stmt) or 0)

    def list_scheduled(
        self,
        session: Session,
        *,
        user_id: str,
        status: ScheduledAlertStatus | None = None,
    ) -> list[ScheduledAlert]:
        stmt = select(ScheduledAlert).where(ScheduledAlert.user_id == user_id)
        if status is not None:
            stmt = stmt.where(ScheduledAlert.status == status.value)
        stmt = stmt.order_by(ScheduledAlert.scheduled_at.asc())
        return list(session.scalars(stmt).all())
