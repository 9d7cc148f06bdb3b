from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from alert_engine.alerts.quiet_hours import is_valid_hhmm
from alert_engine.alerts.time_utils import as_utc, is_valid_timezone, now_utc
from alert_engine.db.models import (
    AlertChannel,
    AlertPriority,
    AlertType,
    UserAlertPreference,
)
from alert_engine.services.errors import ValidationError
from alert_engine.services.settings_resolver import EffectiveSettings, SettingsResolver

VALID_PRIORITIES = tuple(item.value for item in AlertPriority)
VALID_CHANNELS = tuple(item.value for item in AlertChannel)

OVERRIDE_FIELDS = (
    "enabled",
    "channel",
    "priority",
    "quiet_start",
    "quiet_end",
    "cooldown_minutes",
    "timezone",
)


def _validate_item(item: dict[str, Any]) -> None:
    if not item.get("alert_type_id"):
        raise ValidationError("alert_type_id required for each preference")

    priority = item.get("priority")
    if priority is not None and priority not in VALID_PRIORITIES:
        raise ValidationError(f"Invalid priority: {priority}")

    channel = item.get("channel")
    if channel is not None and channel not in VALID_CHANNELS:
        raise ValidationError(f"Invalid channel: {channel}")

    for field in ("quiet_start", "quiet_end"):
        value = item.get(field)
        if value is not None and not is_valid_hhmm(value):
            raise ValidationError(f"Invalid {field} format: {value}. Use HH:MM")

    cooldown = item.get("cooldown_minutes")
    if cooldown is not None and cooldown < 0:
        raise ValidationError("cooldown_minutes must be zero or positive")

    timezone = item.get("timezone")
    if timezone is not None and not is_valid_timezone(timezone):
        raise ValidationError(f"Unknown timezone: {timezone}")


class PreferenceService:
    def __init__(self, resolver: SettingsResolver) -> None:
        self.resolver = resolver

    def list_preferences(self, session: Session, *, user_id: str) -> list[EffectiveSettings]:
        return self.resolver.resolve_all(session, user_id=user_id)

    def upsert_preferences(
        self,
        session: Session,
        *,
        user_id: str,
        items: list[dict[str, Any]],
        now: datetime | None = None,
    ) -> int:
        """Write the given overrides; only keys present in an item are touched.

        An explicit ``None`` clears the override so the field inherits the
        alert type default again.
        """
        if not items:
            raise ValidationError("preferences array required")
        items = [
            {key: (None if value == "" else value) for key, value in item.items()}
            for item in items
        ]
        for item in items:
            _validate_item(item)

        type_ids = [item["alert_type_id"] for item in items]
        existing_ids = set(
            session.scalars(select(AlertType.id).where(AlertType.id.in_(type_ids))).all()
        )
        missing = [type_id for type_id in type_ids if type_id not in existing_ids]
        if missing:
            raise ValidationError(f"Unknown alert_type_id(s): {', '.join(missing)}")

        now = as_utc(now or now_utc())
        current = {
            pref.alert_type_id: pref
            for pref in session.scalars(
                select(UserAlertPreference).where(
                    UserAlertPreference.user_id == user_id,
                    UserAlertPreference.alert_type_id.in_(type_ids),
                )
            ).all()
        }

        try:
            for item in items:
                preference = current.get(item["alert_type_id"])
                if preference is None:
                    preference = UserAlertPreference(
                        user_id=user_id,
                        alert_type_id=item["alert_type_id"],
                        created_at=now,
                    )
                    current[item["alert_type_id"]] = preference
                for field in OVERRIDE_FIELDS:
                    if field in item:
                        setattr(preference, field, item[field])
                preference.updated_at = now
                session.add(preference)
            session.commit()
        except Exception:
            session.rollback()
            raise

        return len(items)
