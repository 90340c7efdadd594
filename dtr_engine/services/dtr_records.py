from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dtr_engine.audit import FieldChange, log_record_change
from dtr_engine.errors import ApiError, NotFoundError, TransactionFailure, ValidationError
from dtr_engine.models import (
    AttendanceStatus,
    DailyTimeRecord,
    DayFraction,
    DtrApprovalStatus,
    DtrSource,
    Employee,
    LeaveType,
)
from dtr_engine.schemas import DtrRecordUpsertRequest
from dtr_engine.security import CompanyContext, require_dtr_modify_access
from dtr_engine.services.employees import get_company_employee
from dtr_engine.services.leave_ledger import to_amount
from dtr_engine.services.leave_policy import get_company_leave_type
from dtr_engine.services.leave_usage import (
    HALF_DAY,
    ActiveLeaveUsage,
    LeaveUsageOutcome,
    desired_leave_usage,
    reconcile_leave_usage,
    resolve_active_leave_usage,
)
from dtr_engine.services.schedule_resolver import ScheduleConfigurationError, resolve_schedule_for_date
from dtr_engine.services.time_metrics import calculate_time_metrics
from dtr_engine.services.wall_clock import combine_wall_clock, ensure_end_after_start
from dtr_engine.settings import get_settings

logger = logging.getLogger("dtr_engine.dtr")

AUDIT_TABLE_NAME = "DailyTimeRecord"
REASON_MANUAL_CREATION = "DTR_RECORD_MANUAL_CREATION"
REASON_MANUAL_CORRECTION = "DTR_RECORD_MANUAL_CORRECTION"


@dataclass
class DtrUpsertResult:
    ok: bool
    message: str = ""
    record_id: int | None = None
    action: str | None = None
    changes: list[FieldChange] = field(default_factory=list)
    leave_usage: LeaveUsageOutcome | None = None
    error: ApiError | None = None


@dataclass
class _WriteOutcome:
    record: DailyTimeRecord
    created: bool
    changes: list[FieldChange]
    leave_usage: LeaveUsageOutcome


def _clock_value(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="minutes")


def _decimal_value(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(to_amount(value), "f")


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _snapshot(
    record: DailyTimeRecord | None,
    manual_leave_type_id: int | None,
    manual_leave_days: Decimal | None,
) -> dict[str, Any]:
    return {
        "actualTimeIn": _clock_value(record.actual_time_in) if record else None,
        "actualTimeOut": _clock_value(record.actual_time_out) if record else None,
        "attendanceStatus": _enum_value(record.attendance_status) if record else None,
        "remarks": record.remarks if record else None,
        "hoursWorked": _decimal_value(record.hours_worked) if record else None,
        "tardinessMins": record.tardiness_mins if record and record.tardiness_mins is not None else 0,
        "undertimeMins": record.undertime_mins if record and record.undertime_mins is not None else 0,
        "overtimeHours": _decimal_value(record.overtime_hours) if record else None,
        "nightDiffHours": _decimal_value(record.night_diff_hours) if record else None,
        "approvalStatusCode": _enum_value(record.approval_status) if record else None,
        "manualLeaveTypeId": manual_leave_type_id,
        "manualLeaveDays": _decimal_value(manual_leave_days or Decimal(0)),
    }


def build_change_set(before: dict[str, Any], after: dict[str, Any]) -> list[FieldChange]:
    return [
        FieldChange(field_name=name, old_value=before.get(name), new_value=value)
        for name, value in after.items()
        if before.get(name) != value
    ]


def _load_existing_record(
    db: Session,
    *,
    company_id: int,
    employee_id: int,
    payload: DtrRecordUpsertRequest,
) -> DailyTimeRecord | None:
    if payload.dtr_id is not None:
        record = db.scalar(
            select(DailyTimeRecord)
            .join(Employee, Employee.id == DailyTimeRecord.employee_id)
            .where(
                DailyTimeRecord.id == payload.dtr_id,
                DailyTimeRecord.employee_id == employee_id,
                Employee.company_id == company_id,
            )
        )
        if record is None:
            raise NotFoundError("DTR record not found for this company.")
        return record

    return db.scalar(
        select(DailyTimeRecord).where(
            DailyTimeRecord.employee_id == employee_id,
            DailyTimeRecord.attendance_date == payload.attendance_date,
        )
    )


def _resolve_leave_type(
    db: Session,
    *,
    company_id: int,
    payload: DtrRecordUpsertRequest,
    record: DailyTimeRecord | None,
    existing_usage: ActiveLeaveUsage | None,
) -> LeaveType | None:
    if payload.attendance_status != AttendanceStatus.ON_LEAVE:
        return None

    leave_type_id = payload.leave_type_id
    if leave_type_id is None and record is not None:
        leave_type_id = record.leave_type_id
    if leave_type_id is None and existing_usage is not None:
        leave_type_id = existing_usage.leave_type_id
    if leave_type_id is None:
        raise ValidationError("Leave type is required when attendance status is ON_LEAVE.")
    return get_company_leave_type(db, company_id=company_id, leave_type_id=leave_type_id)


def _resolve_day_fraction(
    *,
    payload: DtrRecordUpsertRequest,
    record: DailyTimeRecord | None,
    existing_usage: ActiveLeaveUsage | None,
) -> DayFraction:
    if payload.day_fraction is not None:
        return payload.day_fraction
    if record is None:
        return DayFraction.FULL
    # Rows saved before the structured column hold its default; the charged amount is authoritative.
    if record.active_leave_usage_transaction_id is None and existing_usage is not None:
        if abs(existing_usage.amount - HALF_DAY) < get_settings().leave_amount_tolerance:
            return DayFraction.HALF
        return DayFraction.FULL
    return record.day_fraction or DayFraction.FULL


def _write_dtr_record(
    db: Session,
    *,
    payload: DtrRecordUpsertRequest,
    context: CompanyContext,
) -> _WriteOutcome:
    require_dtr_modify_access(context)
    employee = get_company_employee(db, company_id=context.company_id, employee_id=payload.employee_id)
    record = _load_existing_record(db, company_id=context.company_id, employee_id=employee.id, payload=payload)
    attendance_date = record.attendance_date if record is not None else payload.attendance_date

    time_in = combine_wall_clock(attendance_date, payload.actual_time_in)
    time_out = combine_wall_clock(attendance_date, payload.actual_time_out)
    if (time_in is None) != (time_out is None):
        raise ValidationError("Both time in and time out are required when providing attendance time.")
    if time_in is not None and time_out is not None:
        time_out = ensure_end_after_start(time_in, time_out)
    if payload.attendance_status == AttendanceStatus.PRESENT and time_in is None:
        raise ValidationError("Present status requires both time in and time out.")

    existing_usage = resolve_active_leave_usage(db, record)
    leave_type = _resolve_leave_type(
        db,
        company_id=context.company_id,
        payload=payload,
        record=record,
        existing_usage=existing_usage,
    )
    day_fraction = _resolve_day_fraction(payload=payload, record=record, existing_usage=existing_usage)

    settings = get_settings()
    schedule = employee.work_schedule
    try:
        window = resolve_schedule_for_date(attendance_date, schedule)
    except ScheduleConfigurationError as exc:
        raise ValidationError(str(exc)) from exc
    metrics = calculate_time_metrics(
        time_in=time_in,
        time_out=time_out,
        schedule_window=window,
        break_minutes=schedule.break_duration_mins if schedule is not None else settings.default_break_minutes,
        grace_minutes=schedule.grace_period_mins if schedule is not None else settings.default_grace_minutes,
    )

    before = _snapshot(
        record,
        existing_usage.leave_type_id if existing_usage is not None else None,
        existing_usage.amount if existing_usage is not None else None,
    )

    created = record is None
    if record is None:
        record = DailyTimeRecord(employee_id=employee.id, attendance_date=attendance_date)
        db.add(record)

    record.actual_time_in = time_in
    record.actual_time_out = time_out
    record.time_in_source = DtrSource.MANUAL if time_in is not None else None
    record.time_out_source = DtrSource.MANUAL if time_out is not None else None
    record.attendance_status = payload.attendance_status
    record.remarks = payload.remarks
    record.day_fraction = day_fraction
    record.leave_type_id = leave_type.id if leave_type is not None else None
    record.hours_worked = metrics.hours_worked
    record.tardiness_mins = metrics.tardiness_mins
    record.undertime_mins = metrics.undertime_mins
    record.overtime_hours = metrics.overtime_hours
    record.night_diff_hours = metrics.night_diff_hours
    # A manual correction by an elevated role is itself the approval.
    record.approval_status = DtrApprovalStatus.APPROVED
    record.approved_by = context.user_id
    record.approved_at = datetime.now(timezone.utc)
    db.flush()

    desired = desired_leave_usage(
        attendance_status=payload.attendance_status,
        leave_type=leave_type,
        attendance_date=attendance_date,
        day_fraction=day_fraction,
    )
    leave_usage = reconcile_leave_usage(
        db,
        record=record,
        existing=existing_usage,
        desired=desired,
        processed_by=context.user_id,
    )
    db.flush()

    after = _snapshot(
        record,
        desired.leave_type_id if desired is not None else None,
        desired.amount if desired is not None else None,
    )
    return _WriteOutcome(
        record=record,
        created=created,
        changes=build_change_set(before, after),
        leave_usage=leave_usage,
    )


def upsert_dtr_record(
    db: Session,
    payload: DtrRecordUpsertRequest,
    context: CompanyContext,
    *,
    request_id: str | None = None,
) -> DtrUpsertResult:
    """Create or correct one DTR row and converge its leave usage in a single transaction.

    Failures never raise: the session is rolled back and the typed error is
    returned on the result. The audit row is written only after a successful
    commit.
    """
    log_extra = {
        "request_id": request_id,
        "company_id": context.company_id,
        "employee_id": payload.employee_id,
        "attendance_date": payload.attendance_date,
        "dtr_id": payload.dtr_id,
        "actor_id": context.user_id,
    }
    try:
        outcome = _write_dtr_record(db, payload=payload, context=context)
        db.commit()
    except ApiError as exc:
        db.rollback()
        logger.warning("dtr_upsert_failed", extra={**log_extra, "error_code": exc.code, "error": exc.message})
        return DtrUpsertResult(ok=False, message=exc.message, error=exc)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("dtr_upsert_failed", extra={**log_extra, "error_code": "TRANSACTION_FAILED"})
        failure = TransactionFailure(f"Failed to update DTR record: {getattr(exc, 'orig', None) or exc}")
        return DtrUpsertResult(ok=False, message=failure.message, error=failure)
    except Exception:
        db.rollback()
        logger.exception("dtr_upsert_failed", extra={**log_extra, "error_code": "TRANSACTION_FAILED"})
        failure = TransactionFailure("Failed to update DTR record: Unknown error")
        return DtrUpsertResult(ok=False, message=failure.message, error=failure)

    record = outcome.record
    action = "CREATE" if outcome.created else "UPDATE"
    log_record_change(
        db,
        table_name=AUDIT_TABLE_NAME,
        record_id=record.id,
        action=action,
        actor_id=context.user_id,
        reason=REASON_MANUAL_CREATION if outcome.created else REASON_MANUAL_CORRECTION,
        changes=outcome.changes,
        request_id=request_id,
    )
    logger.info(
        "dtr_upsert_succeeded",
        extra={
            **log_extra,
            "dtr_id": record.id,
            "action": action,
            "leave_usage_action": outcome.leave_usage.action.value,
            "changed_fields": [item.field_name for item in outcome.changes],
        },
    )
    return DtrUpsertResult(
        ok=True,
        message="DTR record created and approved." if outcome.created else "DTR record updated and approved.",
        record_id=record.id,
        action=action,
        changes=outcome.changes,
        leave_usage=outcome.leave_usage,
    )
