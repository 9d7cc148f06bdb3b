from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from alert_engine.alerts.quiet_hours import DISABLED_WINDOW
from alert_engine.db.models import AlertType, UserAlertPreference
from alert_engine.services.errors import unknown_alert_type


@dataclass(frozen=True)
class EffectiveSettings:
    alert_type_id: str
    label: str
    description: str | None
    category: str
    premium_only: bool
    enabled: bool
    channel: str
    priority: str
    quiet_start: str
    quiet_end: str
    cooldown_minutes: int
    timezone: str
    is_default: bool

    @property
    def default_body(self) -> str:
        return self.description or ""


def _overlay(
    alert_type: AlertType,
    preference: UserAlertPreference | None,
    default_timezone: str,
) -> EffectiveSettings:
    def pick(field: str, fallback):
        if preference is None:
            return fallback
        value = getattr(preference, field)
        return fallback if value is None else value

    quiet_start = pick("quiet_start", None)
    quiet_end = pick("quiet_end", None)
    if quiet_start is None or quiet_end is None:
        quiet_start, quiet_end = DISABLED_WINDOW

    return EffectiveSettings(
        alert_type_id=alert_type.id,
        label=alert_type.label,
        description=alert_type.description,
        category=alert_type.category,
        premium_only=alert_type.premium_only,
        enabled=pick("enabled", True),
        channel=pick("channel", alert_type.default_channel),
        priority=pick("priority", alert_type.default_priority),
        quiet_start=quiet_start,
        quiet_end=quiet_end,
        cooldown_minutes=pick("cooldown_minutes", alert_type.default_cooldown_minutes),
        timezone=pick("timezone", default_timezone),
        is_default=preference is None,
    )


class SettingsResolver:
    def __init__(self, *, default_timezone: str = "UTC") -> None:
        self.default_timezone = default_timezone

    def resolve(
        self, session: Session, *, user_id: str, alert_type_id: str
    ) -> EffectiveSettings:
        stmt = (
            select(AlertType, UserAlertPreference)
            .outerjoin(
                UserAlertPreference,
                and_(
                    UserAlertPreference.alert_type_id == AlertType.id,
                    UserAlertPreference.user_id == user_id,
                ),
            )
            .where(AlertType.id == alert_type_id)
        )
        row = session.execute(stmt).first()
        if row is None:
            raise unknown_alert_type(alert_type_id)

        alert_type, preference = row
        return _overlay(alert_type, preference, self.default_timezone)

    def resolve_all(self, session: Session, *, user_id: str) -> list[EffectiveSettings]:
        stmt = (
            select(AlertType, UserAlertPreference)
            .outerjoin(
                UserAlertPreference,
                and_(
                    UserAlertPreference.alert_type_id == AlertType.id,
                    UserAlertPreference.user_id == user_id,
                ),
            )
            .where(AlertType.enabled.is_(True))
            .order_by(AlertType.category.asc(), AlertType.label.asc())
        )
        return [
            _overlay(alert_type, preference, self.default_timezone)
            for alert_type, preference in session.execute(stmt).all()
        ]
