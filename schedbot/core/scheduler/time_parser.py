# schedbot/core/scheduler/time_parser.py
"""Time expression translator.

Translates English and Vietnamese recurring-time phrases into canonical
cron expressions, and builds APScheduler triggers from those expressions.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, tzinfo

from apscheduler.triggers.cron import CronTrigger

from schedbot.core.scheduler.errors import InvalidSchedule

# Weekday tables (0=Sunday, cron convention)
EN_WEEKDAYS = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}

VI_WEEKDAYS = {
    "chủ nhật": 0,
    "2": 1,
    "3": 2,
    "4": 3,
    "5": 4,
    "6": 5,
    "7": 6,
}

# APScheduler counts weekdays from Monday; cron counts from Sunday (0 and 7)
APS_WEEKDAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]

_HM = r"([0-9]{1,2}):([0-9]{1,2})"


def _time_of_day(hours: str, minutes: str) -> tuple[int, int]:
    hour, minute = int(hours), int(minutes)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise InvalidSchedule(f"{hours}:{minutes}")
    return hour, minute


def _daily(hours: str, minutes: str) -> str:
    hour, minute = _time_of_day(hours, minutes)
    return f"0 {minute} {hour} * * *"


def _weekly_en(day: str, hours: str, minutes: str) -> str:
    hour, minute = _time_of_day(hours, minutes)
    return f"0 {minute} {hour} * * {EN_WEEKDAYS[day.lower()]}"


def _weekly_vi(day: str, hours: str, minutes: str) -> str:
    hour, minute = _time_of_day(hours, minutes)
    return f"0 {minute} {hour} * * {VI_WEEKDAYS[day.lower()]}"


def _monthly(day: str, hours: str, minutes: str) -> str:
    day_of_month = int(day)
    if not 1 <= day_of_month <= 31:
        raise InvalidSchedule(day)
    hour, minute = _time_of_day(hours, minutes)
    return f"0 {minute} {hour} {day_of_month} * *"


def _interval(amount: str, unit: str) -> str:
    n = int(amount)
    if n < 1:
        raise InvalidSchedule(amount)
    unit = unit.lower()
    if unit.startswith("minute") or unit == "phút":
        return f"*/{n} * * * *"
    if unit.startswith("hour") or unit == "giờ":
        return f"0 0 */{n} * * *"
    return f"0 0 0 */{n} * *"


def _twelve_hour(hours: str, minutes: str, period: str) -> str:
    hour, minute = int(hours), int(minutes)
    if not (1 <= hour <= 12 and 0 <= minute < 60):
        raise InvalidSchedule(f"{hours}:{minutes} {period}")
    period = period.lower()
    if period in ("pm", "chiều", "tối") and hour < 12:
        hour += 12
    if period in ("am", "sáng") and hour == 12:
        hour = 0
    return f"0 {minute} {hour} * * *"


# Ordered pattern library: first match wins
TIME_PATTERNS: list[tuple[re.Pattern[str], Callable[..., str]]] = [
    # Daily
    (re.compile(rf"daily at {_HM}", re.I), _daily),
    (re.compile(rf"every day at {_HM}", re.I), _daily),
    (re.compile(rf"mỗi ngày lúc {_HM}", re.I), _daily),
    (re.compile(rf"hàng ngày lúc {_HM}", re.I), _daily),
    # Weekly
    (
        re.compile(
            r"every (monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
            rf" at {_HM}",
            re.I,
        ),
        _weekly_en,
    ),
    (re.compile(rf"mỗi thứ ([2-7]|chủ nhật) lúc {_HM}", re.I), _weekly_vi),
    (re.compile(rf"mỗi (chủ nhật) lúc {_HM}", re.I), _weekly_vi),
    # Monthly
    (
        re.compile(
            rf"every ([0-9]{{1,2}})(?:st|nd|rd|th) of(?: the)? month at {_HM}",
            re.I,
        ),
        _monthly,
    ),
    (re.compile(rf"mỗi ngày ([0-9]{{1,2}}) hàng tháng lúc {_HM}", re.I), _monthly),
    # Interval
    (
        re.compile(r"every ([0-9]+) (minutes?|hours?|days?)\b", re.I),
        _interval,
    ),
    (re.compile(r"mỗi ([0-9]+) (phút|giờ|ngày)", re.I), _interval),
    # Time of day, 12-hour clock
    (re.compile(rf"at {_HM} (am|pm)\b", re.I), _twelve_hour),
    (re.compile(rf"lúc {_HM} (sáng|chiều|tối)", re.I), _twelve_hour),
]

# Six fields: second minute hour day-of-month month day-of-week
_SEXAGESIMAL = r"(?:\*|[0-9]|[1-5][0-9]|\*/(?:[1-9]|[1-5][0-9]))"
_HOUR = r"(?:\*|[0-9]|1[0-9]|2[0-3]|\*/(?:[1-9]|1[0-9]|2[0-3]))"
_DOM = r"(?:\*|[1-9]|[12][0-9]|3[01]|\*/(?:[1-9]|[12][0-9]|3[01]))"
_MONTH = r"(?:\*|[1-9]|1[0-2]|\*/(?:[1-9]|1[0-2]))"
_DOW = r"(?:\*|[0-6]|\*/[1-6])"
CRON_PATTERN = re.compile(
    rf"^{_SEXAGESIMAL} {_SEXAGESIMAL} {_HOUR} {_DOM} {_MONTH} {_DOW}$"
)


def is_valid_cron(expression: str) -> bool:
    """Check whether text is a syntactically valid 6-field cron expression.

    Args:
        expression: Candidate expression.

    Returns:
        True if every field is "*", a number in range or "*/n" with n >= 1.
    """
    return bool(CRON_PATTERN.match(expression))


def translate(text: str | None) -> str:
    """Translate a time phrase or cron expression into a canonical schedule.

    Supports (English / Vietnamese):
    - Daily: "daily at 08:00", "every day at 8:30", "mỗi ngày lúc 08:00"
    - Weekly: "every monday at 09:15", "mỗi thứ 2 lúc 09:15"
    - Monthly: "every 15th of the month at 10:00",
      "mỗi ngày 15 hàng tháng lúc 10:00"
    - Interval: "every 30 minutes", "mỗi 2 giờ"
    - 12-hour: "at 7:30 pm", "lúc 7:30 tối"
    - A 6-field cron expression, accepted verbatim

    Args:
        text: Time phrase or cron expression.

    Returns:
        Canonical cron expression.

    Raises:
        InvalidSchedule: If nothing matched.

    Examples:
        >>> translate("every 1 minute")
        '*/1 * * * *'
        >>> translate("mỗi thứ 2 lúc 09:15")
        '0 15 9 * * 1'
    """
    if not text or not text.strip():
        raise InvalidSchedule(text)

    text = text.strip()
    for pattern, formatter in TIME_PATTERNS:
        match = pattern.search(text)
        if match:
            return formatter(*match.groups())

    if is_valid_cron(text):
        return text

    raise InvalidSchedule(text)


def is_human_phrase(text: str, expression: str) -> bool:
    """Whether translate() derived expression from a phrase rather than verbatim."""
    return expression != text.strip()


def _map_day_of_week(field: str) -> str:
    if field == "*" or "/" in field:
        return field

    names: list[str] = []
    for token in field.split(","):
        if "-" in token:
            start, end = (int(part) for part in token.split("-", 1))
            names.extend(APS_WEEKDAY_NAMES[day] for day in range(start, end + 1))
        elif token.isdigit():
            names.append(APS_WEEKDAY_NAMES[int(token)])
        else:
            names.append(token)
    # Keep order, drop the duplicate "sun" from "0-7"
    return ",".join(dict.fromkeys(names))


def build_trigger(expression: str, timezone: tzinfo) -> CronTrigger:
    """Build an APScheduler trigger from a canonical cron expression.

    Accepts 5-field (minute first) and 6-field (second first) expressions.
    Numeric weekdays follow cron (0 and 7 are Sunday).

    Args:
        expression: Cron expression.
        timezone: Timezone the expression is evaluated in.

    Returns:
        CronTrigger for the expression.

    Raises:
        InvalidSchedule: If the expression has the wrong shape or APScheduler
            rejects a field.
    """
    fields = expression.split()
    if len(fields) == 5:
        fields = ["0", *fields]
    if len(fields) != 6:
        raise InvalidSchedule(expression)

    second, minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_map_day_of_week(day_of_week),
            timezone=timezone,
        )
    except (ValueError, IndexError) as e:
        raise InvalidSchedule(expression) from e


def format_time(dt: datetime | None) -> str:
    """Format datetime as DD/MM/YYYY HH:MM:SS.

    Args:
        dt: Datetime to format.

    Returns:
        Formatted string, or "N/A" when dt is None.
    """
    if dt is None:
        return "N/A"
    return dt.strftime("%d/%m/%Y %H:%M:%S")
