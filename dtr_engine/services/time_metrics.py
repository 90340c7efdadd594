from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from dtr_engine.services.schedule_resolver import ScheduleWindow
from dtr_engine.settings import get_settings

HOURS_QUANTUM = Decimal("0.01")
_SECONDS_PER_MINUTE = Decimal(60)
_SECONDS_PER_HOUR = Decimal(3600)


@dataclass(frozen=True)
class TimeMetrics:
    hours_worked: Decimal
    tardiness_mins: int
    undertime_mins: int
    overtime_hours: Decimal
    night_diff_hours: Decimal


ZERO_METRICS = TimeMetrics(
    hours_worked=Decimal("0.00"),
    tardiness_mins=0,
    undertime_mins=0,
    overtime_hours=Decimal("0.00"),
    night_diff_hours=Decimal("0.00"),
)


def round_hours(value: Decimal) -> Decimal:
    return value.quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)


def round_minutes(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _seconds(delta: timedelta) -> Decimal:
    return Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)


def _minutes(delta: timedelta) -> Decimal:
    return _seconds(delta) / _SECONDS_PER_MINUTE


def _hours(delta: timedelta) -> Decimal:
    return _seconds(delta) / _SECONDS_PER_HOUR


def night_diff_duration(
    time_in: datetime,
    time_out: datetime,
    *,
    window_start_hour: int = 22,
    window_end_hour: int = 6,
) -> timedelta:
    """Total overlap of [time_in, time_out) with the nightly premium windows.

    Each calendar day D owns the window D window_start_hour -> D+1
    window_end_hour. The walk covers every day from time_in's date through
    time_out's date, which keeps shifts longer than 24 hours correct. A
    clock-in after midnight does not reach back into the previous night.
    """
    if time_out <= time_in:
        return timedelta(0)

    total = timedelta(0)
    cursor = time_in.date()
    last_day = time_out.date()
    while cursor <= last_day:
        window_start = datetime.combine(cursor, datetime.min.time()) + timedelta(hours=window_start_hour)
        window_end = datetime.combine(cursor + timedelta(days=1), datetime.min.time()) + timedelta(hours=window_end_hour)
        overlap_start = max(time_in, window_start)
        overlap_end = min(time_out, window_end)
        if overlap_end > overlap_start:
            total += overlap_end - overlap_start
        cursor += timedelta(days=1)
    return total


def calculate_time_metrics(
    *,
    time_in: datetime | None,
    time_out: datetime | None,
    schedule_window: ScheduleWindow | None,
    break_minutes: int,
    grace_minutes: int,
) -> TimeMetrics:
    if time_in is None or time_out is None:
        return ZERO_METRICS

    settings = get_settings()
    worked = _hours(time_out - time_in) - Decimal(max(0, break_minutes)) / Decimal(60)
    night_diff = night_diff_duration(
        time_in,
        time_out,
        window_start_hour=settings.night_diff_start_hour,
        window_end_hour=settings.night_diff_end_hour,
    )

    tardiness_mins = 0
    undertime_mins = 0
    overtime_hours = Decimal(0)
    if schedule_window is not None:
        late_by = _minutes(time_in - schedule_window.scheduled_in) - Decimal(max(0, grace_minutes))
        if late_by > 0:
            tardiness_mins = round_minutes(late_by)

        early_by = _minutes(schedule_window.scheduled_out - time_out)
        if early_by > 0:
            undertime_mins = round_minutes(early_by)

        overtime_mins = _minutes(time_out - schedule_window.scheduled_out)
        if overtime_mins > 0:
            overtime_hours = overtime_mins / Decimal(60)

    return TimeMetrics(
        hours_worked=round_hours(max(Decimal(0), worked)),
        tardiness_mins=tardiness_mins,
        undertime_mins=undertime_mins,
        overtime_hours=round_hours(overtime_hours),
        night_diff_hours=round_hours(_hours(night_diff)),
    )
