"""Recognise time expressions in a query and turn them into a date range.

Only a handful of English phrasings are understood ("yesterday", "last
week", "past 3 days", "december 15", "on monday", "in march", "the 15th").
The first matching pattern wins. Ranges are half-open ``[start, end)`` and
day boundaries are taken in the timezone of ``now``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}
_MONTH_ABBR = {name[:3]: num for name, num in _MONTHS.items()} | {"sept": 9}
_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_MONTH_NAMES = "|".join(sorted(set(_MONTHS) | set(_MONTH_ABBR), key=len, reverse=True))

_TODAY_RE = re.compile(r"\b(?:today|this morning|this afternoon|this evening|tonight)\b")
_YESTERDAY_RE = re.compile(r"\byesterday\b")
_LAST_WEEK_RE = re.compile(r"\blast week\b")
_THIS_WEEK_RE = re.compile(r"\bthis week\b")
_LAST_MONTH_RE = re.compile(r"\blast month\b")
_THIS_MONTH_RE = re.compile(r"\bthis month\b")
_PAST_DAYS_RE = re.compile(r"\b(?:last|past) (\d{1,3}) days?\b")
_MONTH_DAY_RE = re.compile(rf"\b({_MONTH_NAMES})\.? (\d{{1,2}})(?:st|nd|rd|th)?\b")
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b")
# A bare "may" is almost always the verb, so it only counts after "in".
_MONTH_RE = re.compile(rf"\b(?:in (may)|(?!may\b)({_MONTH_NAMES}))\b")
_ORDINAL_RE = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)\b")


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval of timestamps named by a query phrase."""

    start: datetime
    end: datetime
    label: str

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def parse_time_range(query: str, now: datetime | None = None) -> TimeRange | None:
    """Return the range the query refers to, or ``None`` if it names none."""
    now = now or datetime.now(timezone.utc)
    tz = now.tzinfo or timezone.utc
    today = now.date()
    text = query.lower()

    def days(first: date, last_exclusive: date, label: str) -> TimeRange:
        return TimeRange(
            datetime.combine(first, time.min, tzinfo=tz),
            datetime.combine(last_exclusive, time.min, tzinfo=tz),
            label,
        )

    if _TODAY_RE.search(text):
        return days(today, today + timedelta(days=1), "today")
    if _YESTERDAY_RE.search(text):
        return days(today - timedelta(days=1), today, "yesterday")

    monday = today - timedelta(days=today.weekday())
    if _LAST_WEEK_RE.search(text):
        return days(monday - timedelta(days=7), monday, "last week")
    if _THIS_WEEK_RE.search(text):
        return days(monday, today + timedelta(days=1), "this week")

    first_of_month = today.replace(day=1)
    if _LAST_MONTH_RE.search(text):
        previous = (first_of_month - timedelta(days=1)).replace(day=1)
        return days(previous, first_of_month, "last month")
    if _THIS_MONTH_RE.search(text):
        return days(first_of_month, today + timedelta(days=1), "this month")

    match = _PAST_DAYS_RE.search(text)
    if match:
        count = int(match.group(1))
        return days(today - timedelta(days=count), today + timedelta(days=1), f"past {count} days")

    match = _MONTH_DAY_RE.search(text)
    if match:
        month = _month_number(match.group(1))
        day = _safe_date(today.year, month, int(match.group(2)))
        if day is not None and day > today:
            day = _safe_date(today.year - 1, month, day.day)
        if day is not None:
            return days(day, day + timedelta(days=1), day.strftime("%B %d").lower())

    match = _WEEKDAY_RE.search(text)
    if match:
        target = _WEEKDAYS.index(match.group(1))
        back = (today.weekday() - target) % 7 or 7
        day = today - timedelta(days=back)
        return days(day, day + timedelta(days=1), match.group(1))

    match = _MONTH_RE.search(text)
    if match:
        month = _month_number(match.group(1) or match.group(2))
        year = today.year if month <= today.month else today.year - 1
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return days(start, end, start.strftime("%B").lower())

    match = _ORDINAL_RE.search(text)
    if match:
        wanted = int(match.group(1))
        day = _safe_date(today.year, today.month, wanted)
        if day is not None and day > today:
            previous = first_of_month - timedelta(days=1)
            day = _safe_date(previous.year, previous.month, wanted)
        if day is not None:
            return days(day, day + timedelta(days=1), match.group(0))

    return None


def _month_number(name: str) -> int:
    return _MONTHS.get(name) or _MONTH_ABBR[name]


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None
