from __future__ import annotations

from datetime import date, datetime, time, timedelta


DATE_FORMAT = "%Y-%m-%d"
TIME_FORMATS = ("%H:%M:%S", "%H:%M")


def parse_date(value: str | date | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip()[:10], DATE_FORMAT).date()
    except ValueError:
        return None


def parse_time(value: str | time | None) -> time | None:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    return None


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"{minutes} minutes does not fit in a single day")
    return time(minutes // 60, minutes % 60)


def shift_time(start: time, duration: timedelta) -> time:
    """Return ``start + duration`` as a time of day on the same day."""

    total = to_minutes(start) + int(duration.total_seconds() // 60)
    return from_minutes(total)


def time_span(start: time, end: time) -> timedelta:
    return timedelta(minutes=to_minutes(end) - to_minutes(start))


def format_time(value: time | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%H:%M")
