"""Deterministic resolution of natural-language due dates and clock times."""
from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional, Tuple

WEEKDAYS = {name.lower(): index for index, name in enumerate(calendar.day_name)}
MONTHS = {name.lower(): index for index, name in enumerate(calendar.month_name) if name}
MONTHS.update({name.lower(): index for index, name in enumerate(calendar.month_abbr) if name})

PART_OF_DAY_TIMES = {
    "morning": "09:00",
    "afternoon": "15:00",
    "evening": "19:00",
    "tonight": "20:00",
}

_IN_DAYS_RE = re.compile(r"\b(?:in\s+(\d{1,3})\s+days?|(\d{1,3})\s+days?\s+from\s+now)\b")
_TODAY_RE = re.compile(r"\b(?:today|tonight|later today|this\s+(?:morning|afternoon|evening))\b")
_WEEKDAY_RE = re.compile(r"\b(?:by|on|this|before)\s+(" + "|".join(WEEKDAYS) + r")\b")
_END_OF_MONTH_RE = re.compile(r"\bend\s+of\s+(?:the\s+)?month\b")
_MONTH_DAY_RE = re.compile(r"\b(" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b")
_URGENT_RE = re.compile(r"\b(?:asap|urgent(?:ly)?)\b")
_PART_OF_DAY_RE = re.compile(r"\b(?:this\s+|tomorrow\s+)?(morning|afternoon|evening|tonight)\b")

_CLOCK_12H_RE = re.compile(r"\b(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*(a\.?m\.?|p\.?m\.?)(?![a-z])")
_CLOCK_24H_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_NOON_RE = re.compile(r"\b(noon|midday|midnight)\b")
_EVENT_RE = re.compile(r"\b(meeting|meet\s+with|call|phone|appointment|interview|dentist|doctor)\b")


@dataclass(frozen=True)
class DateResolution:
    due_date: date
    phrase: str


def resolve_date_phrase(text: str, today: date) -> Optional[DateResolution]:
    """The due date named by ``text``, or None when it names none."""
    lowered = (text or "").lower()

    match = _IN_DAYS_RE.search(lowered)
    if match:
        days = int(match.group(1) or match.group(2))
        return DateResolution(today + timedelta(days=days), match.group(0))
    if re.search(r"\btomorrow\b", lowered):
        return DateResolution(today + timedelta(days=1), "tomorrow")
    match = _TODAY_RE.search(lowered)
    if match:
        return DateResolution(today, match.group(0))
    match = _WEEKDAY_RE.search(lowered)
    if match:
        target = WEEKDAYS[match.group(1)]
        return DateResolution(today + timedelta(days=(target - today.weekday()) % 7), match.group(0))
    if _END_OF_MONTH_RE.search(lowered):
        last_day = calendar.monthrange(today.year, today.month)[1]
        return DateResolution(today.replace(day=last_day), "end of the month")
    if re.search(r"\bthis\s+weekend\b", lowered):
        return DateResolution(upcoming_sunday(today), "this weekend")
    if re.search(r"\bnext\s+week\b", lowered):
        return DateResolution(upcoming_sunday(today) + timedelta(days=7), "next week")
    match = _MONTH_DAY_RE.search(lowered)
    if match:
        resolved = _month_day(MONTHS[match.group(1)], int(match.group(2)), today)
        if resolved:
            return DateResolution(resolved, match.group(0))
    if _URGENT_RE.search(lowered):
        return DateResolution(today + timedelta(days=1), "asap")
    return None


def upcoming_sunday(today: date) -> date:
    return today + timedelta(days=(6 - today.weekday()) % 7)


def find_clock_time(text: str) -> Optional[str]:
    """First explicit clock time in ``text`` as 24-hour HH:MM."""
    lowered = (text or "").lower()
    match = _CLOCK_12H_RE.search(lowered)
    if match:
        hour = int(match.group(1)) % 12
        if match.group(3).startswith("p"):
            hour += 12
        return f"{hour:02d}:{int(match.group(2) or 0):02d}"
    match = _CLOCK_24H_RE.search(lowered)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"
    match = _NOON_RE.search(lowered)
    if match:
        return "00:00" if match.group(1) == "midnight" else "12:00"
    return None


def part_of_day_time(text: str) -> Optional[str]:
    match = _PART_OF_DAY_RE.search((text or "").lower())
    return PART_OF_DAY_TIMES[match.group(1)] if match else None


def implies_event(title: str) -> bool:
    return bool(_EVENT_RE.search((title or "").lower()))


def normalize_clock(value: Any) -> Optional[str]:
    """Canonical HH:MM for a loosely formatted time, or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    return find_clock_time(value.strip())


def parse_iso_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def apply_schedule(
    text: str,
    today: date,
    *,
    title: str,
    given_due: Optional[date] = None,
    given_time: Optional[str] = None,
    source_text: Optional[str] = None,
    default_due_days: int = 3,
) -> Tuple[date, Optional[str]]:
    """Final (due_date, scheduled_time) for one task.

    A due date supplied by the model wins; otherwise phrases in the task text decide,
    falling back to the default horizon. A time is kept only when a clock time is named
    or the title reads like a calendar event.
    """
    resolution = resolve_date_phrase(text, today)
    if given_due is not None:
        due = given_due
    elif resolution is not None:
        due = resolution.due_date
    else:
        due = today + timedelta(days=default_due_days)

    explicit = find_clock_time(text)
    event = implies_event(title)
    named_in_source = explicit is not None or find_clock_time(source_text or "") is not None

    if explicit:
        scheduled = explicit
    elif given_time and (event or named_in_source):
        scheduled = given_time
    elif event:
        scheduled = part_of_day_time(text)
    else:
        scheduled = None
    return due, scheduled


def _month_day(month: int, day: int, today: date) -> Optional[date]:
    for year in (today.year, today.year + 1):
        try:
            candidate = date(year, month, day)
        except ValueError:
            return None
        if candidate >= today:
            return candidate
    return None
