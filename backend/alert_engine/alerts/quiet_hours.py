"""Quiet-hours window arithmetic.

Windows are ``[start, end)`` in local 24-hour ``HH:MM``. A window whose end is
earlier than its start wraps midnight; ``start == end`` disables it.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from alert_engine.alerts.time_utils import as_utc, now_utc

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DISABLED_WINDOW = ("00:00", "00:00")


class InvalidQuietHours(ValueError):
    pass


def is_valid_hhmm(value: str) -> bool:
    return bool(HHMM_PATTERN.match(value))


def to_minutes(value: str) -> int:
    if not is_valid_hhmm(value):
        raise InvalidQuietHours(f"Invalid time '{value}'. Use HH:MM")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def is_quiet(now_hhmm: str, quiet_start: str | None, quiet_end: str | None) -> bool:
    if not quiet_start or not quiet_end:
        return False

    now = to_minutes(now_hhmm)
    start = to_minutes(quiet_start)
    end = to_minutes(quiet_end)

    if start == end:
        return False
    if start > end:
        return now >= start or now < end
    return start <= now < end


def current_hhmm(timezone: ZoneInfo, now: datetime | None = None) -> str:
    local = as_utc(now or now_utc()).astimezone(timezone)
    return local.strftime("%H:%M")


def next_window_end(now: datetime, quiet_end: str, timezone: ZoneInfo) -> datetime:
    """First instant strictly after ``now`` at which the local clock reads ``quiet_end``."""
    end_minutes = to_minutes(quiet_end)
    local_now = as_utc(now).astimezone(timezone)
    candidate = local_now.replace(
        hour=end_minutes // 60, minute=end_minutes % 60, second=0, microsecond=0
    )
    if candidate <= local_now:
        candidate = candidate + timedelta(days=1)
    return as_utc(candidate)
