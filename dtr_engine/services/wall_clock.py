from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

_HHMM_PATTERN = re.compile(r"^\d{2}:\d{2}$")


def parse_hhmm(value: str) -> time:
    """Parse a zero-padded ``HH:MM`` string; raises ValueError when malformed."""
    raw = (value or "").strip()
    if not _HHMM_PATTERN.match(raw):
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM.")
    hour_str, minute_str = raw.split(":")
    hour = int(hour_str)
    minute = int(minute_str)
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM.")
    return time(hour=hour, minute=minute)


def format_hhmm(value: time | datetime | None) -> str:
    if value is None:
        return ""
    return f"{value.hour:02d}:{value.minute:02d}"


def combine_wall_clock(day_date: date, value: time | str | None) -> datetime | None:
    if value is None or value == "":
        return None
    parsed = parse_hhmm(value) if isinstance(value, str) else value
    return datetime.combine(day_date, parsed.replace(second=0, microsecond=0, tzinfo=None))


def ensure_end_after_start(start: datetime, end: datetime) -> datetime:
    if end > start:
        return end
    return end + timedelta(days=1)
