"""Tests for cronkit/scheduler/cron.py"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from cronkit.core.errors import ParseError, ScheduleExhaustedError
from cronkit.scheduler.cron import FieldKind, is_due, is_valid, next_fire_after, parse


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ── Parsing ──────────────────────────────────────────────────────────────────

class TestParse:
    def test_normalises_whitespace(self):
        assert parse("  0   2 * *\t* ").expression == "0 2 * * *"

    def test_field_kinds(self):
        s = parse("*/5 9-17 1,15 * 3")
        assert s.minute.kind == FieldKind.STEP
        assert s.hour.kind == FieldKind.RANGE
        assert s.day_of_month.kind == FieldKind.VALUES
        assert s.month.kind == FieldKind.WILDCARD
        assert s.day_of_week.kind == FieldKind.VALUES

    def test_range_with_step(self):
        s = parse("10-30/10 * * * *")
        assert s.minute.values == frozenset({10, 20, 30})

    def test_start_with_step_runs_to_max(self):
        s = parse("5/20 * * * *")
        assert s.minute.values == frozenset({5, 25, 45})

    def test_step_larger_than_domain(self):
        s = parse("*/90 * * * *")
        assert s.minute.values == frozenset({0})

    def test_mixed_list(self):
        s = parse("0,30,45-47 * * * *")
        assert s.minute.values == frozenset({0, 30, 45, 46, 47})

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "* * * *",
            "* * * * * *",
            "99 * * * *",
            "* 24 * * *",
            "* * 0 * *",
            "* * 32 * *",
            "* * * 0 *",
            "* * * 13 *",
            "* * * * 7",
            "5-1 * * * *",
            "*/0 * * * *",
            "a * * * *",
            "1,,2 * * * *",
            "-1 * * * *",
            "1-2-3 * * * *",
            "*/ * * * *",
            "MON * * * *",
        ],
    )
    def test_rejects_invalid(self, text):
        with pytest.raises(ParseError):
            parse(text)
        assert is_valid(text) is False

    def test_error_names_field(self):
        with pytest.raises(ParseError) as exc:
            parse("0 99 * * *")
        assert exc.value.field == "hour"
        assert exc.value.token == "99"
        assert "hour" in str(exc.value)

    def test_field_count_error_message(self):
        with pytest.raises(ParseError, match="exactly 5 fields"):
            parse("0 2 * *")

    def test_is_valid(self):
        assert is_valid("*/15 9-17 * * 1-5")

    @pytest.mark.parametrize(
        "text",
        ["0 2 * * *", "*/15 9-17 * * 1-5", "0 0 15 * 1", "5/20 1,2,3 */2 6-8 0", "0 0 */1 * 1"],
    )
    def test_to_expression_reparses_to_same_schedule(self, text):
        s = parse(text)
        assert parse(s.to_expression()) == s

    def test_str_is_expression(self):
        assert str(parse("0  2 * * *")) == "0 2 * * *"


# ── Matching ─────────────────────────────────────────────────────────────────

class TestIsDue:
    def test_daily_at_two(self):
        s = parse("0 2 * * *")
        assert is_due(s, utc(2026, 1, 5, 2, 0))
        assert not is_due(s, utc(2026, 1, 5, 2, 1))
        assert not is_due(s, utc(2026, 1, 5, 1, 59))

    def test_ignores_seconds(self):
        s = parse("0 2 * * *")
        assert is_due(s, utc(2026, 1, 5, 2, 0, 45, 123))

    def test_every_five_minutes(self):
        s = parse("*/5 * * * *")
        for minute in range(60):
            assert is_due(s, utc(2026, 1, 5, 10, minute)) == (minute % 5 == 0)

    def test_day_of_month_or_day_of_week_when_both_restricted(self):
        s = parse("0 0 15 * 1")
        assert is_due(s, utc(2026, 1, 15, 0, 0))      # the 15th, a Thursday
        assert is_due(s, utc(2026, 1, 5, 0, 0))       # a Monday
        assert not is_due(s, utc(2026, 1, 6, 0, 0))   # a Tuesday, the 6th

    def test_day_of_month_only(self):
        s = parse("0 0 15 * *")
        assert is_due(s, utc(2026, 1, 15, 0, 0))
        assert not is_due(s, utc(2026, 1, 5, 0, 0))

    def test_star_step_day_of_month_counts_as_unrestricted(self):
        s = parse("0 0 */1 * 1")
        assert is_due(s, utc(2026, 1, 5, 0, 0))
        assert not is_due(s, utc(2026, 1, 6, 0, 0))

    def test_sunday_is_zero(self):
        s = parse("0 0 * * 0")
        assert is_due(s, utc(2026, 1, 4, 0, 0))
        assert not is_due(s, utc(2026, 1, 5, 0, 0))

    def test_weekdays_business_hours(self):
        s = parse("*/15 9-17 * * 1-5")
        assert is_due(s, utc(2026, 1, 5, 9, 30))
        assert not is_due(s, utc(2026, 1, 5, 18, 0))
        assert not is_due(s, utc(2026, 1, 3, 9, 30))  # Saturday

    def test_uses_local_wall_clock(self):
        s = parse("0 9 * * *")
        berlin = ZoneInfo("Europe/Berlin")
        assert is_due(s, datetime(2026, 1, 5, 9, 0, tzinfo=berlin))
        assert not is_due(s, datetime(2026, 1, 5, 9, 0, tzinfo=berlin).astimezone(timezone.utc))


# ── Next fire time ───────────────────────────────────────────────────────────

class TestNextFireAfter:
    def test_later_same_day(self):
        assert next_fire_after(parse("0 2 * * *"), utc(2026, 1, 5, 1, 30)) == utc(2026, 1, 5, 2, 0)

    def test_strictly_after(self):
        assert next_fire_after(parse("0 2 * * *"), utc(2026, 1, 5, 2, 0)) == utc(2026, 1, 6, 2, 0)

    def test_crosses_year(self):
        s = parse("0 0 1 3 *")
        assert s.next_after(utc(2026, 12, 31, 23, 59)) == utc(2027, 3, 1, 0, 0)

    def test_leap_day(self):
        s = parse("0 0 29 2 *")
        assert s.next_after(utc(2026, 3, 1, 0, 0)) == utc(2028, 2, 29, 0, 0)

    @pytest.mark.parametrize("text", ["0 0 30 2 *", "0 0 31 4 *", "0 0 31 2,4,6,9,11 *"])
    def test_never_fires(self, text):
        with pytest.raises(ScheduleExhaustedError):
            parse(text).next_after(utc(2026, 1, 1, 0, 0))

    def test_keeps_timezone(self):
        tz = ZoneInfo("America/New_York")
        nxt = parse("30 8 * * *").next_after(datetime(2026, 1, 5, 9, 0, tzinfo=tz))
        assert nxt == datetime(2026, 1, 6, 8, 30, tzinfo=tz)
        assert nxt.tzinfo is tz

    def test_result_is_due(self):
        s = parse("*/7 3-5 1,10,20 * 2")
        t = utc(2026, 1, 1, 0, 0)
        for _ in range(25):
            t = s.next_after(t)
            assert s.is_due(t)

    def test_no_due_minute_skipped(self):
        s = parse("*/20 */6 * * *")
        start = utc(2026, 1, 5, 0, 0)
        expected = [
            start + timedelta(minutes=m)
            for m in range(1, 3 * 24 * 60)
            if s.is_due(start + timedelta(minutes=m))
        ]
        got, t = [], start
        while len(got) < len(expected):
            t = s.next_after(t)
            got.append(t)
        assert got == expected


# ── Reference comparison ─────────────────────────────────────────────────────

class TestAgainstCroniter:
    @pytest.mark.parametrize(
        "text",
        [
            "0 2 * * *",
            "*/15 9-17 * * 1-5",
            "30 4 1,15 * 5",
            "0 0 15 * 1",
            "0 12 * 2,6 *",
            "59 23 31 12 *",
            "0 */6 * * 0",
            "0 0 29 2 *",
        ],
    )
    def test_next_matches_croniter(self, text):
        croniter = pytest.importorskip("croniter").croniter
        base = utc(2026, 1, 5, 1, 30)
        reference = croniter(text, base)
        s = parse(text)
        t = base
        for _ in range(12):
            t = s.next_after(t)
            assert t == reference.get_next(datetime)
