"""Tests for cronspine.core.timeexpr — time expression resolution."""

from __future__ import annotations

from datetime import UTC

import pytest

from cronspine.core.errors import ParseError
from cronspine.core.timeexpr import (
    get_timezone,
    is_cron_expression,
    is_valid_recurring,
    next_occurrence,
    resolve,
    try_resolve,
)

# 2023-11-14 22:13:20 UTC, a Tuesday
REF = 1_700_000_000
MIDNIGHT = 1_699_920_000
DAY = 86_400
HOUR = 3_600


# ── Absolute values ─────────────────────────────────────────────────────


class TestAbsolute:
    def test_int_passthrough(self):
        assert resolve(1234, REF) == 1234

    def test_digit_string_is_timestamp(self):
        assert resolve("1234", REF) == 1234

    def test_at_prefixed_timestamp(self):
        assert resolve("@1234", REF) == 1234

    def test_date(self):
        assert resolve("2024-12-31", REF) == 1_735_603_200

    def test_date_and_time(self):
        assert resolve("2024-12-31 12:30", REF) == 1_735_603_200 + 12 * HOUR + 30 * 60

    def test_time_only_uses_reference_day(self):
        assert resolve("08:00", REF) == MIDNIGHT + 8 * HOUR


# ── Keywords ────────────────────────────────────────────────────────────


class TestKeywords:
    def test_now(self):
        assert resolve("now", REF) == REF

    def test_today(self):
        assert resolve("today", REF) == MIDNIGHT

    def test_midnight(self):
        assert resolve("midnight", REF) == MIDNIGHT

    def test_tomorrow(self):
        assert resolve("tomorrow", REF) == MIDNIGHT + DAY

    def test_yesterday(self):
        assert resolve("yesterday", REF) == MIDNIGHT - DAY

    def test_noon(self):
        assert resolve("noon", REF) == MIDNIGHT + 12 * HOUR

    def test_tomorrow_with_time(self):
        assert resolve("tomorrow 08:00", REF) == MIDNIGHT + DAY + 8 * HOUR

    def test_case_insensitive(self):
        assert resolve("Tomorrow", REF) == MIDNIGHT + DAY


# ── Relative offsets ────────────────────────────────────────────────────


class TestOffsets:
    def test_plus_one_day(self):
        assert resolve("+1 day", REF) == REF + DAY

    def test_plural_units(self):
        assert resolve("+2 hours", REF) == REF + 2 * HOUR

    def test_negative(self):
        assert resolve("-2 days", REF) == REF - 2 * DAY

    def test_ago(self):
        assert resolve("3 hours ago", REF) == REF - 3 * HOUR

    def test_combined(self):
        assert resolve("+1 week 2 days", REF) == REF + 9 * DAY

    def test_minutes_and_seconds(self):
        assert resolve("+5 min 30 sec", REF) == REF + 330

    def test_next_month(self):
        # 2023-11-14 → 2023-12-14
        assert resolve("next month", REF) == REF + 30 * DAY

    def test_last_year(self):
        # 2022-11-14
        assert resolve("last year", REF) == REF - 365 * DAY

    def test_fortnight(self):
        assert resolve("+1 fortnight", REF) == REF + 14 * DAY


# ── Weekdays ────────────────────────────────────────────────────────────


class TestWeekdays:
    def test_next_monday(self):
        assert resolve("next monday", REF) == MIDNIGHT + 6 * DAY

    def test_bare_weekday_is_upcoming(self):
        assert resolve("friday", REF) == MIDNIGHT + 3 * DAY

    def test_bare_weekday_today(self):
        assert resolve("tuesday", REF) == MIDNIGHT

    def test_next_same_weekday_is_a_week_away(self):
        assert resolve("next tuesday", REF) == MIDNIGHT + 7 * DAY

    def test_last_monday(self):
        assert resolve("last monday", REF) == MIDNIGHT - DAY

    def test_abbreviation(self):
        assert resolve("next mon", REF) == MIDNIGHT + 6 * DAY


# ── Timezones ───────────────────────────────────────────────────────────


class TestTimezone:
    def test_today_in_new_york(self):
        # 17:13 EST on 2023-11-14; local midnight is 05:00 UTC
        assert resolve("today", REF, "America/New_York") == MIDNIGHT + 5 * HOUR

    def test_offsets_unaffected(self):
        assert resolve("+1 hour", REF, "Europe/Berlin") == REF + HOUR

    def test_utc_names(self):
        assert get_timezone(None) is UTC
        assert get_timezone("UTC") is UTC

    def test_unknown_timezone(self):
        with pytest.raises(ParseError):
            get_timezone("Mars/Olympus_Mons")


# ── Failures ────────────────────────────────────────────────────────────


class TestInvalid:
    @pytest.mark.parametrize("expression", ["", "   ", "not a time", "+1 parsec"])
    def test_rejected(self, expression):
        with pytest.raises(ParseError):
            resolve(expression, REF)

    def test_bool_rejected(self):
        with pytest.raises(ParseError):
            resolve(True, REF)

    def test_non_string_rejected(self):
        with pytest.raises(ParseError):
            resolve(1.5, REF)

    def test_try_resolve(self):
        assert try_resolve("+1 day", REF).unwrap() == REF + DAY
        result = try_resolve("garbage", REF)
        assert result.is_err()
        assert isinstance(result.error, ParseError)


# ── Recurrence ──────────────────────────────────────────────────────────


class TestNextOccurrence:
    def test_relative_expression_anchored_at_start(self):
        assert next_occurrence("+1 day", REF) == REF + DAY

    def test_cron_expression(self):
        assert next_occurrence("0 8 * * *", REF) == MIDNIGHT + DAY + 8 * HOUR

    def test_cron_every_five_minutes(self):
        # 22:13:20 → 22:15:00
        assert next_occurrence("*/5 * * * *", REF) == REF + 100

    def test_must_advance(self):
        with pytest.raises(ParseError):
            next_occurrence("-1 day", REF)

    def test_same_time_does_not_advance(self):
        with pytest.raises(ParseError):
            next_occurrence("+0 days", REF)

    @pytest.mark.parametrize("expression", ["", "   ", "whenever"])
    def test_invalid(self, expression):
        with pytest.raises(ParseError):
            next_occurrence(expression, REF)

    def test_is_cron_expression(self):
        assert is_cron_expression("*/5 * * * *")
        assert not is_cron_expression("+1 day")
        assert not is_cron_expression("a b c d e")

    def test_is_valid_recurring(self):
        assert is_valid_recurring("+1 hour")
        assert not is_valid_recurring("yesterday")
