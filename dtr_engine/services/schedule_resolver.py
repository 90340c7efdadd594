"""Resolve the effective scheduled time-in/time-out of a work schedule for one day.

A schedule carries a base start/end plus seven weekday slots. Each slot is one
of three variants: the day is not worked, the base hours apply, or explicit
hours replace them. Resolved windows whose end is not after their start are
rolled forward one day (overnight shifts).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Mapping, Union

from sqlalchemy.orm import Session

from dtr_engine.errors import NotFoundError, ValidationError
from dtr_engine.models import WorkSchedule
from dtr_engine.services.employees import get_company_employee
from dtr_engine.services.wall_clock import ensure_end_after_start, format_hhmm, parse_hhmm

# Indexed by date.weekday().
WEEKDAY_NAMES: tuple[str, ...] = (
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
)


class ScheduleConfigurationError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class NotWorking:
    kind: str = "NOT_WORKING"


@dataclass(frozen=True, slots=True)
class UseBase:
    kind: str = "USE_BASE"


@dataclass(frozen=True, slots=True)
class Explicit:
    start: time
    end: time
    kind: str = "EXPLICIT"


DayOverride = Union[NotWorking, UseBase, Explicit]


@dataclass(frozen=True, slots=True)
class ScheduleWindow:
    scheduled_in: datetime
    scheduled_out: datetime


@dataclass(frozen=True, slots=True)
class EmployeeScheduleSummary:
    name: str
    time_in: str
    time_out: str


def _parse_override_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    try:
        return parse_hhmm(str(value))
    except ValueError as exc:
        raise ScheduleConfigurationError("Invalid work schedule override time.") from exc


def parse_day_override(raw: Any) -> DayOverride:
    if raw is None:
        return UseBase()
    if not isinstance(raw, Mapping):
        raise ScheduleConfigurationError("Work schedule day override must be an object.")

    kind = raw.get("kind")
    if kind is None:
        # Legacy shape: {"isWorkingDay": bool, "timeIn": "HH:MM", "timeOut": "HH:MM"}
        if raw.get("isWorkingDay") is False:
            return NotWorking()
        if raw.get("timeIn") and raw.get("timeOut"):
            return Explicit(start=_parse_override_time(raw["timeIn"]), end=_parse_override_time(raw["timeOut"]))
        return UseBase()

    normalized_kind = str(kind).strip().upper()
    if normalized_kind == "NOT_WORKING":
        return NotWorking()
    if normalized_kind == "USE_BASE":
        return UseBase()
    if normalized_kind == "EXPLICIT":
        if not raw.get("start_time") or not raw.get("end_time"):
            raise ScheduleConfigurationError("Explicit day override requires start_time and end_time.")
        return Explicit(start=_parse_override_time(raw["start_time"]), end=_parse_override_time(raw["end_time"]))
    raise ScheduleConfigurationError(f"Unknown day override kind: {kind!r}")


def parse_day_overrides(raw: Any) -> dict[int, DayOverride]:
    overrides: dict[int, DayOverride] = {index: UseBase() for index in range(len(WEEKDAY_NAMES))}
    if not isinstance(raw, Mapping):
        return overrides
    for index, day_name in enumerate(WEEKDAY_NAMES):
        overrides[index] = parse_day_override(raw.get(day_name))
    return overrides


def serialize_day_overrides(overrides: Mapping[int, DayOverride]) -> dict[str, dict[str, str]]:
    payload: dict[str, dict[str, str]] = {}
    for index, day_name in enumerate(WEEKDAY_NAMES):
        override = overrides.get(index, UseBase())
        if isinstance(override, Explicit):
            payload[day_name] = {
                "kind": override.kind,
                "start_time": format_hhmm(override.start),
                "end_time": format_hhmm(override.end),
            }
        else:
            payload[day_name] = {"kind": override.kind}
    return payload


def resolve_schedule_for_date(attendance_date: date, schedule: WorkSchedule | None) -> ScheduleWindow | None:
    if schedule is None:
        return None

    override = parse_day_overrides(schedule.day_overrides)[attendance_date.weekday()]
    if isinstance(override, NotWorking):
        return None

    if isinstance(override, Explicit):
        start, end = override.start, override.end
    else:
        start, end = schedule.work_start_time, schedule.work_end_time

    scheduled_in = datetime.combine(attendance_date, start.replace(tzinfo=None))
    scheduled_out = datetime.combine(attendance_date, end.replace(tzinfo=None))
    return ScheduleWindow(
        scheduled_in=scheduled_in,
        scheduled_out=ensure_end_after_start(scheduled_in, scheduled_out),
    )


def describe_employee_schedule(
    db: Session,
    *,
    company_id: int,
    employee_id: int,
    attendance_date: date,
) -> EmployeeScheduleSummary:
    employee = get_company_employee(db, company_id=company_id, employee_id=employee_id)
    schedule = employee.work_schedule
    if schedule is None:
        raise NotFoundError("No work schedule assigned.")

    try:
        window = resolve_schedule_for_date(attendance_date, schedule)
    except ScheduleConfigurationError as exc:
        raise ValidationError(str(exc)) from exc
    if window is None:
        raise ValidationError("Selected day is configured as rest day.")

    return EmployeeScheduleSummary(
        name=schedule.name,
        time_in=format_hhmm(window.scheduled_in),
        time_out=format_hhmm(window.scheduled_out),
    )
