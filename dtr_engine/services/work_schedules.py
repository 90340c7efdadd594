from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from dtr_engine.errors import NotFoundError, ValidationError
from dtr_engine.models import WorkSchedule
from dtr_engine.schemas import WorkScheduleRead, WorkScheduleUpsertRequest
from dtr_engine.services.schedule_resolver import (
    WEEKDAY_NAMES,
    ScheduleConfigurationError,
    parse_day_override,
    parse_day_overrides,
    serialize_day_overrides,
)
from dtr_engine.services.wall_clock import format_hhmm, parse_hhmm


def _get_company_schedule(db: Session, *, company_id: int, schedule_id: int) -> WorkSchedule:
    schedule = db.scalar(
        select(WorkSchedule).where(
            WorkSchedule.id == schedule_id,
            WorkSchedule.company_id == company_id,
        )
    )
    if schedule is None:
        raise NotFoundError("Work schedule not found for this company.")
    return schedule


def update_work_schedule(
    db: Session,
    *,
    company_id: int,
    schedule_id: int,
    payload: WorkScheduleUpsertRequest,
) -> WorkSchedule:
    schedule = _get_company_schedule(db, company_id=company_id, schedule_id=schedule_id)

    duplicate = db.scalar(
        select(WorkSchedule.id).where(
            WorkSchedule.company_id == company_id,
            WorkSchedule.code == payload.code,
            WorkSchedule.id != schedule.id,
        )
    )
    if duplicate is not None:
        raise ValidationError(f"Work schedule code {payload.code} is already in use.")

    overrides = {}
    for index, day_name in enumerate(WEEKDAY_NAMES):
        rule = payload.day_overrides.get(day_name)
        try:
            overrides[index] = parse_day_override(rule.model_dump(exclude_none=True) if rule is not None else None)
        except ScheduleConfigurationError as exc:
            raise ValidationError(str(exc)) from exc

    schedule.code = payload.code
    schedule.name = payload.name
    schedule.work_start_time = parse_hhmm(payload.work_start_time)
    schedule.work_end_time = parse_hhmm(payload.work_end_time)
    schedule.break_duration_mins = payload.break_duration_mins
    schedule.grace_period_mins = payload.grace_period_mins
    schedule.day_overrides = serialize_day_overrides(overrides)
    schedule.is_active = payload.is_active

    db.commit()
    db.refresh(schedule)
    return schedule


def to_work_schedule_read(schedule: WorkSchedule) -> WorkScheduleRead:
    return WorkScheduleRead(
        id=schedule.id,
        company_id=schedule.company_id,
        code=schedule.code,
        name=schedule.name,
        work_start_time=format_hhmm(schedule.work_start_time),
        work_end_time=format_hhmm(schedule.work_end_time),
        break_duration_mins=schedule.break_duration_mins,
        grace_period_mins=schedule.grace_period_mins,
        day_overrides=serialize_day_overrides(parse_day_overrides(schedule.day_overrides)),
        is_active=schedule.is_active,
    )
