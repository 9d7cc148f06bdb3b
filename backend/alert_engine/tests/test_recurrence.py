from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from alert_engine.alerts.recurrence import (
    IntervalRule,
    InvalidRecurrenceRule,
    WeekdayRule,
    next_run,
    parse_rule,
)

BERLIN_TZ = ZoneInfo("Europe/Berlin")


def test_daily_adds_one_day() -> None:
    start = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    assert next_run("daily", None, start) == datetime(2024, 1, 2, 9, 0, tzinfo=UTC)


def test_weekly_adds_seven_days() -> None:
    start = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    assert next_run("weekly", None, start) == datetime(2024, 1, 8, 9, 0, tzinfo=UTC)


def test_daily_keeps_local_time_across_dst_change() -> None:
    # 2026-10-25 is the end of summer time in Berlin.
    start = datetime(2026, 10, 24, 7, 0, tzinfo=UTC)  # 09:00 CEST
    result = next_run("daily", None, start, timezone=BERLIN_TZ)

    assert result.astimezone(BERLIN_TZ).hour == 9
    assert result == datetime(2026, 10, 25, 8, 0, tzinfo=UTC)


def test_custom_interval_rules() -> None:
    start = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)

    assert next_run("custom", "every_30_minutes", start) == start + timedelta(minutes=30)
    assert next_run("custom", "every_2_hours", start) == start + timedelta(hours=2)
    assert next_run("custom", "every_3_days", start) == start + timedelta(days=3)
    assert next_run("custom", "every_1_week", start) == start + timedelta(weeks=1)


def test_custom_weekday_rule_picks_next_listed_day() -> None:
    monday = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    assert monday.weekday() == 0

    assert next_run("custom", "days:wed,fri", monday) == datetime(
        2024, 1, 3, 9, 0, tzinfo=UTC
    )
    # Strictly after the reference day, so a Monday-only rule jumps a week.
    assert next_run("custom", "days:mon", monday) == datetime(
        2024, 1, 8, 9, 0, tzinfo=UTC
    )


def test_parse_rule_shapes() -> None:
    assert parse_rule("every_15_minutes") == IntervalRule(delta=timedelta(minutes=15))
    assert parse_rule(" Days:Mon, Sun ") == WeekdayRule(weekdays=frozenset({0, 6}))


@pytest.mark.parametrize(
    "rule",
    [
        None,
        "",
        "hourly",
        "every_0_days",
        "every_2_minutes",
        "every_53_weeks",
        "every_5000000_days",
        "every_99999999999_days",
        "days:",
        "days:funday",
    ],
)
def test_invalid_custom_rules_are_rejected(rule: str | None) -> None:
    with pytest.raises(InvalidRecurrenceRule):
        parse_rule(rule)


def test_unknown_recurrence_is_rejected() -> None:
    with pytest.raises(InvalidRecurrenceRule):
        next_run("monthly", None, datetime(2024, 1, 1, tzinfo=UTC))
