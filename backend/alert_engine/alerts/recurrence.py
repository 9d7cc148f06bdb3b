"""Next-run calculation for recurring scheduled alerts.

Custom rules accept two forms:

* ``every_<N>_<unit>`` where unit is ``minute(s)``, ``hour(s)``, ``day(s)`` or
  ``week(s)``; minute intervals must be at least ``MIN_INTERVAL_MINUTES`` and
  no interval may exceed ``MAX_INTERVAL``.
* ``days:<d>[,<d>...]`` with weekday abbreviations ``mon`` .. ``sun``; the next
  listed weekday strictly after the reference time, same local time of day.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from alert_engine.db.models import Recurrence

MIN_INTERVAL_MINUTES = 5
MAX_INTERVAL = timedelta(days=366)

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_INTERVAL_RULE = re.compile(r"^every_(\d+)_(minute|hour|day|week)s?$")
_WEEKDAY_RULE = re.compile(r"^days:([a-z,\s]+)$")


class InvalidRecurrenceRule(ValueError):
    pass


@dataclass(frozen=True)
class IntervalRule:
    delta: timedelta


@dataclass(frozen=True)
class WeekdayRule:
    weekdays: frozenset[int]


CustomRule = IntervalRule | WeekdayRule


def parse_rule(rule: str | None) -> CustomRule:
    if not isinstance(rule, str) or not rule.strip():
        raise InvalidRecurrenceRule("recurrence_rule required for custom recurrence")

    normalized = rule.strip().lower()

    interval = _INTERVAL_RULE.match(normalized)
    if interval:
        amount = int(interval.group(1))
        unit = interval.group(2)
        if amount <= 0:
            raise InvalidRecurrenceRule(f"Interval must be positive in '{rule}'")
        if unit == "minute" and amount < MIN_INTERVAL_MINUTES:
            raise InvalidRecurrenceRule(
                f"Minute intervals must be at least {MIN_INTERVAL_MINUTES} in '{rule}'"
            )
        try:
            delta = timedelta(**{f"{unit}s": amount})
        except OverflowError:
            delta = None
        if delta is None or delta > MAX_INTERVAL:
            raise InvalidRecurrenceRule(
                f"Interval must not exceed {MAX_INTERVAL.days} days in '{rule}'"
            )
        return IntervalRule(delta=delta)

    weekday = _WEEKDAY_RULE.match(normalized)
    if weekday:
        names = [name.strip() for name in weekday.group(1).split(",") if name.strip()]
        unknown = [name for name in names if name not in WEEKDAYS]
        if not names or unknown:
            raise InvalidRecurrenceRule(
                f"Unknown weekday(s) {unknown or names} in '{rule}'. "
                f"Use: {', '.join(WEEKDAYS)}"
            )
        return WeekdayRule(weekdays=frozenset(WEEKDAYS.index(name) for name in names))

    raise InvalidRecurrenceRule(
        f"Unsupported recurrence_rule '{rule}'. "
        "Use every_<N>_minutes|hours|days|weeks or days:mon,wed,..."
    )


def _shift(from_date: datetime, delta: timedelta, timezone: ZoneInfo | None) -> datetime:
    # Aware datetime arithmetic is wall-clock arithmetic, so converting to the
    # user's zone first keeps the local time of day across DST changes.
    if timezone is None or from_date.tzinfo is None:
        return from_date + delta
    local = from_date.astimezone(timezone) + delta
    return local.astimezone(from_date.tzinfo)


def _next_weekday(
    from_date: datetime, weekdays: frozenset[int], timezone: ZoneInfo | None
) -> datetime:
    reference = (
        from_date.astimezone(timezone)
        if timezone is not None and from_date.tzinfo is not None
        else from_date
    )
    for offset in range(1, 8):
        if (reference.weekday() + offset) % 7 in weekdays:
            return _shift(from_date, timedelta(days=offset), timezone)
    raise InvalidRecurrenceRule("Weekday rule matched no day")


def next_run(
    recurrence: str,
    rule: str | None,
    from_date: datetime,
    *,
    timezone: ZoneInfo | None = None,
) -> datetime:
    if recurrence == Recurrence.daily.value:
        return _shift(from_date, timedelta(days=1), timezone)
    if recurrence == Recurrence.weekly.value:
        return _shift(from_date, timedelta(days=7), timezone)
    if recurrence == Recurrence.custom.value:
        parsed = parse_rule(rule)
        if isinstance(parsed, IntervalRule):
            if parsed.delta >= timedelta(days=1):
                return _shift(from_date, parsed.delta, timezone)
            return from_date + parsed.delta
        return _next_weekday(from_date, parsed.weekdays, timezone)

    raise InvalidRecurrenceRule(
        f"Invalid recurrence '{recurrence}'. "
        f"Use: {', '.join(item.value for item in Recurrence)}"
    )
