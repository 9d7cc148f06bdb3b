from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CUSTOM_NOTIFICATION_TYPE = "custom"

ICON = "/icons/icon-192x192.png"
BADGE = "/icons/badge-72x72.png"


@dataclass(frozen=True)
class PushTemplate:
    title: str
    body: str
    tag: str | None = None
    url: str = "/"
    actions: tuple[tuple[str, str], ...] = field(default_factory=tuple)


PUSH_TEMPLATES: dict[str, PushTemplate] = {
    "morning_reminder": PushTemplate(
        title="Good Morning!",
        body="Start your day with your morning flow",
        tag="morning-reminder",
        actions=(("open", "Start Flow"), ("dismiss", "Later")),
    ),
    "checkpoint": PushTemplate(
        title="Checkpoint Time",
        body="Take a moment to check in with yourself",
        tag="checkpoint",
        actions=(("open", "Check In"), ("dismiss", "Skip")),
    ),
    "evening_reminder": PushTemplate(
        title="Evening Wind Down",
        body="Time to close out your day and reflect",
        tag="evening-reminder",
        actions=(("open", "Day Close"), ("dismiss", "Later")),
    ),
    "streak_at_risk": PushTemplate(
        title="Keep Your Streak!",
        body="Don't break your streak - complete today's flow",
        tag="streak-risk",
        actions=(("open", "Continue"),),
    ),
    "weekly_review": PushTemplate(
        title="Weekly Review Ready",
        body="See how your week went and celebrate your wins",
        tag="weekly-review",
        actions=(("open", "View Review"),),
    ),
    CUSTOM_NOTIFICATION_TYPE: PushTemplate(
        title="Wellness",
        body="You have a new notification",
    ),
}

# Alert types whose id doubles as a transport notification type; anything
# else is delivered as "custom".
KNOWN_NOTIFICATION_TYPES = frozenset(
    {
        "morning_reminder",
        "checkpoint",
        "evening_reminder",
        "bedtime_reminder",
        "streak_at_risk",
        "weekly_review",
        "insight",
        "daily_quote",
        "daily_affirmation",
        "motivational_nudge",
        "daily_motivation",
        "featured_music",
        "coach_checkin",
        "coach_accountability",
    }
)


def notification_type_for(alert_type_id: str) -> str:
    if alert_type_id in KNOWN_NOTIFICATION_TYPES:
        return alert_type_id
    return CUSTOM_NOTIFICATION_TYPE


def build_push_payload(
    *,
    notification_type: str,
    title: str,
    body: str,
    data: dict[str, Any] | None,
) -> dict[str, Any]:
    template = PUSH_TEMPLATES.get(notification_type, PUSH_TEMPLATES[CUSTOM_NOTIFICATION_TYPE])

    payload: dict[str, Any] = {
        "title": title or template.title,
        "body": body or template.body,
        "icon": ICON,
        "badge": BADGE,
        "data": {"url": template.url, **(data or {}), "type": notification_type},
    }
    if template.tag:
        payload["tag"] = template.tag
    if template.actions:
        payload["actions"] = [
            {"action": action, "title": label} for action, label in template.actions
        ]
    return payload
