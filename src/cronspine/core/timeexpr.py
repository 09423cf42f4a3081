"""Relative time expressions - resolution of ``start``, ``end`` and ``recurring``.

Manifesto:
    Callers describe *when* with human expressions ("+1 day", "tomorrow
    08:00", "2024-12-31") and the store only ever holds absolute unix
    timestamps. The conversion is an explicit parser contract: every call
    site passes the reference time it means (``now`` for start/end, the
    job's previous ``start`` for recurrences) and malformed input fails
    with ``ParseError`` instead of being coerced.

Architecture:
    ::

        resolve(expression, reference)         → int
        ┌──────────────────────────────────────────────────────────┐
        │ 1. ints / "@<unix>" / digit strings   → returned as-is   │
        │ 2. keywords   now today midnight noon tomorrow yesterday │
        │ 3. absolute   dateutil.parser (date, time, ISO 8601)     │
        │ 4. weekdays   "monday", "next friday", "last sunday"     │
        │ 5. offsets    "+1 day", "3 hours ago", "next month"      │
        └──────────────────────────────────────────────────────────┘

        next_occurrence(recurring, start)      → int
        ┌──────────────────────────────────────────────────────────┐
        │ cron expression ("0 8 * * *")  → croniter, after start   │
        │ anything else                  → resolve(recurring, start)│
        │ result must be strictly later than start                 │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> resolve("+1 day", 1_700_000_000)
    1700086400
    >>> resolve("2024-12-31", 0)
    1735603200
    >>> next_occurrence("0 8 * * *", 1_700_000_000)
    1700035200

Tags:
    time, parsing, relative time, croniter, dateutil, cronspine
"""

from __future__ import annotations

import re
import time
from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from dateutil import parser as date_parser
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from cronspine.core.errors import ParseError
from cronspine.core.result import Err, Ok, Result

_UNITS: dict[str, tuple[str, int]] = {
    "sec": ("seconds", 1),
    "second": ("seconds", 1),
    "min": ("minutes", 1),
    "minute": ("minutes", 1),
    "hour": ("hours", 1),
    "day": ("days", 1),
    "week": ("weeks", 1),
    "fortnight": ("weeks", 2),
    "month": ("months", 1),
    "year": ("years", 1),
}

_WEEKDAYS = {
    "mon": MO, "monday": MO,
    "tue": TU, "tuesday": TU,
    "wed": WE, "wednesday": WE,
    "thu": TH, "thursday": TH,
    "fri": FR, "friday": FR,
    "sat": SA, "saturday": SA,
    "sun": SU, "sunday": SU,
}

_UNIT_PATTERN = r"(?P<unit>sec(?:ond)?s?|min(?:ute)?s?|hours?|days?|weeks?|fortnights?|months?|years?)"

_OFFSET_RE = re.compile(
    r"(?<![\w:.])(?P<num>[+-]?\s*\d+)\s*" + _UNIT_PATTERN + r"\b(?P<ago>\s+ago)?"
)
_NAMED_OFFSET_RE = re.compile(r"\b(?P<dir>next|last|previous|this)\s+" + _UNIT_PATTERN + r"\b")
_WEEKDAY_RE = re.compile(
    r"\b(?:(?P<dir>next|last|previous|this)\s+)?(?P<day>"
    + "|".join(sorted(_WEEKDAYS, key=len, reverse=True))
    + r")\b"
)
_KEYWORD_RE = re.compile(r"\b(?P<word>now|today|midnight|noon|tomorrow|yesterday)\b")
_UNIX_RE = re.compile(r"@?-?\d+")


def system_clock() -> int:
    """Current unix timestamp."""
    return int(time.time())


def get_timezone(tz: str | tzinfo | None) -> tzinfo:
    """Resolve a timezone name; ``None`` and ``"UTC"`` mean UTC."""
    if tz is None or tz == "UTC":
        return UTC
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ParseError(f"Unknown timezone: {tz!r}", field="timezone", value=tz, cause=e) from e


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def resolve(expression: str | int, reference: int, tz: str | tzinfo | None = None) -> int:
    """Resolve a time expression to an absolute unix timestamp.

    Args:
        expression: Unix timestamp or relative-time expression.
        reference: Unix timestamp the expression is relative to.
        tz: Timezone for calendar arithmetic (default UTC).

    Raises:
        ParseError: If the expression is empty or cannot be parsed.
    """
    if isinstance(expression, bool):
        raise ParseError(f"Invalid time expression: {expression!r}", value=expression)
    if isinstance(expression, int):
        return expression
    if not isinstance(expression, str):
        raise ParseError(f"Invalid time expression: {expression!r}", value=expression)

    text = expression.strip().lower().replace(",", " ")
    if not text:
        raise ParseError("Empty time expression", value=expression)
    if _UNIX_RE.fullmatch(text):
        return int(text.lstrip("@"))

    zone = get_timezone(tz)
    try:
        moment = datetime.fromtimestamp(reference, zone)
    except (OverflowError, OSError, ValueError) as e:
        raise ParseError(f"Invalid reference time: {reference!r}", value=reference, cause=e) from e

    delta = relativedelta()
    weekday = None

    def _take_weekday(match: re.Match) -> str:
        nonlocal weekday
        weekday = (match.group("dir"), _WEEKDAYS[match.group("day")])
        return " "

    def _take_named_offset(match: re.Match) -> str:
        nonlocal delta
        direction = match.group("dir")
        amount = {"next": 1, "this": 0}.get(direction, -1)
        delta += _unit_delta(match.group("unit"), amount)
        return " "

    def _take_offset(match: re.Match) -> str:
        nonlocal delta
        amount = int(match.group("num").replace(" ", ""))
        if match.group("ago"):
            amount = -amount
        delta += _unit_delta(match.group("unit"), amount)
        return " "

    keywords = [m.group("word") for m in _KEYWORD_RE.finditer(text)]
    rest = _KEYWORD_RE.sub(" ", text)
    rest = _WEEKDAY_RE.sub(_take_weekday, rest)
    rest = _NAMED_OFFSET_RE.sub(_take_named_offset, rest)
    rest = _OFFSET_RE.sub(_take_offset, rest)
    rest = " ".join(rest.split())

    try:
        for word in keywords:
            if word in ("today", "midnight"):
                moment = _midnight(moment)
            elif word == "tomorrow":
                moment = _midnight(moment) + relativedelta(days=1)
            elif word == "yesterday":
                moment = _midnight(moment) - relativedelta(days=1)
            elif word == "noon":
                moment = moment.replace(hour=12, minute=0, second=0, microsecond=0)

        if rest:
            if rest.lstrip("+-").isdigit():
                raise ParseError(f"Invalid time expression: {expression!r}", value=expression)
            parsed = date_parser.parse(rest, default=_midnight(moment).replace(tzinfo=None))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=zone)
            moment = parsed.astimezone(zone)

        if weekday is not None:
            direction, day = weekday
            if direction == "next":
                moment = _midnight(moment) + relativedelta(days=1, weekday=day(+1))
            elif direction in ("last", "previous"):
                moment = _midnight(moment) - relativedelta(days=1) + relativedelta(weekday=day(-1))
            else:
                moment = _midnight(moment) + relativedelta(weekday=day(+1))

        moment = moment + delta
        return int(moment.timestamp())
    except (date_parser.ParserError, OverflowError, ValueError, TypeError) as e:
        raise ParseError(f"Invalid time expression: {expression!r}", value=expression, cause=e) from e


def _unit_delta(unit: str, amount: int) -> relativedelta:
    name, factor = _UNITS[unit.rstrip("s")]
    return relativedelta(**{name: amount * factor})


def try_resolve(
    expression: str | int, reference: int, tz: str | tzinfo | None = None
) -> Result[int]:
    """Non-raising variant of :func:`resolve`."""
    try:
        return Ok(resolve(expression, reference, tz))
    except ParseError as e:
        return Err(e)


def is_cron_expression(expression: str) -> bool:
    """True for five/six-field cron expressions croniter accepts."""
    return len(expression.split()) in (5, 6) and croniter.is_valid(expression)


def next_occurrence(recurring: str, start: int, tz: str | tzinfo | None = None) -> int:
    """Evaluate a recurring expression anchored at ``start``.

    Raises:
        ParseError: If the expression cannot be parsed or does not move
            the start time forward.
    """
    if not isinstance(recurring, str) or not recurring.strip():
        raise ParseError(f"Invalid recurring expression: {recurring!r}", field="recurring", value=recurring)

    if is_cron_expression(recurring):
        zone = get_timezone(tz)
        base = datetime.fromtimestamp(start, zone)
        result = int(croniter(recurring, base).get_next(datetime).timestamp())
    else:
        result = resolve(recurring, start, tz)

    if result <= start:
        raise ParseError(
            f"Recurring expression {recurring!r} does not advance the start time",
            field="recurring",
            value=recurring,
            constraint="next > start",
        )
    return result


def is_valid_recurring(recurring: str, tz: str | tzinfo | None = None) -> bool:
    """True when ``recurring`` yields a later time from the current clock."""
    try:
        next_occurrence(recurring, system_clock(), tz)
    except ParseError:
        return False
    return True


__all__ = [
    "system_clock",
    "get_timezone",
    "resolve",
    "try_resolve",
    "is_cron_expression",
    "next_occurrence",
    "is_valid_recurring",
]
