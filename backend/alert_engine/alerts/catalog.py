from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from alert_engine.db.models import AlertType

logger = logging.getLogger(__name__)

DEFAULT_ALERT_TYPES: tuple[dict[str, Any], ...] = (
    {
        "id": "morning_reminder",
        "label": "Morning reminder",
        "category": "routine",
        "description": "Start your day with your morning flow",
        "default_priority": "normal",
        "default_cooldown_minutes": 720,
    },
    {
        "id": "checkpoint",
        "label": "Checkpoint",
        "category": "routine",
        "description": "Take a moment to check in with yourself",
        "default_priority": "normal",
        "default_cooldown_minutes": 120,
    },
    {
        "id": "evening_reminder",
        "label": "Evening wind down",
        "category": "routine",
        "description": "Time to close out your day and reflect",
        "default_priority": "normal",
        "default_cooldown_minutes": 720,
    },
    {
        "id": "bedtime_reminder",
        "label": "Bedtime reminder",
        "category": "routine",
        "description": "Wind down for a restful night",
        "default_priority": "low",
        "default_cooldown_minutes": 720,
    },
    {
        "id": "streak_at_risk",
        "label": "Streak at risk",
        "category": "progress",
        "description": "Don't break your streak - complete today's flow",
        "default_priority": "high",
        "default_cooldown_minutes": 1440,
    },
    {
        "id": "weekly_review",
        "label": "Weekly review",
        "category": "progress",
        "description": "See how your week went and celebrate your wins",
        "default_priority": "normal",
        "default_cooldown_minutes": 10080,
    },
    {
        "id": "insight",
        "label": "New insight",
        "category": "content",
        "description": "A new personal insight is ready",
        "default_priority": "low",
        "default_cooldown_minutes": 240,
    },
    {
        "id": "daily_quote",
        "label": "Daily quote",
        "category": "content",
        "default_priority": "low",
        "default_cooldown_minutes": 1440,
    },
    {
        "id": "daily_affirmation",
        "label": "Daily affirmation",
        "category": "content",
        "default_priority": "low",
        "default_cooldown_minutes": 1440,
    },
    {
        "id": "coach_checkin",
        "label": "Coach check-in",
        "category": "coach",
        "description": "Your coach would like to hear how you are doing",
        "default_priority": "normal",
        "default_cooldown_minutes": 360,
        "premium_only": True,
    },
    {
        "id": "coach_accountability",
        "label": "Coach accountability",
        "category": "coach",
        "default_priority": "high",
        "default_cooldown_minutes": 360,
        "premium_only": True,
    },
    {
        "id": "safety_check",
        "label": "Safety check",
        "category": "system",
        "description": "Important account or safety notice",
        "default_priority": "urgent",
        "default_cooldown_minutes": 0,
    },
)


def seed_alert_types(session: Session) -> int:
    """Insert catalog rows that do not exist yet; existing rows are left untouched."""
    existing = set(session.scalars(select(AlertType.id)).all())
    created = 0
    for entry in DEFAULT_ALERT_TYPES:
        if entry["id"] in existing:
            continue
        session.add(
            AlertType(
                id=entry["id"],
                label=entry["label"],
                category=entry["category"],
                description=entry.get("description"),
                default_channel=entry.get("default_channel", "push"),
                default_priority=entry["default_priority"],
                default_cooldown_minutes=entry["default_cooldown_minutes"],
                premium_only=entry.get("premium_only", False),
                enabled=True,
            )
        )
        created += 1

    if created:
        session.commit()
    logger.info("alert_type_seed_completed", extra={"created": created})
    return created
