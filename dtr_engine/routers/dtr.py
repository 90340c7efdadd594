from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from dtr_engine.audit import log_audit
from dtr_engine.db import get_db
from dtr_engine.errors import AuthorizationError
from dtr_engine.models import AuditActorType
from dtr_engine.schemas import (
    DtrRecordUpsertRequest,
    DtrUpsertResponse,
    EmployeeScheduleRead,
    FieldChangeRead,
    LeaveContextRead,
    WorkScheduleRead,
    WorkScheduleUpsertRequest,
)
from dtr_engine.security import (
    can_manually_modify_dtr,
    require_attendance_read_access,
    require_user,
    resolve_company_context,
)
from dtr_engine.services.dtr_records import upsert_dtr_record
from dtr_engine.services.leave_usage import get_employee_leave_context
from dtr_engine.services.schedule_resolver import describe_employee_schedule
from dtr_engine.services.work_schedules import to_work_schedule_read, update_work_schedule

router = APIRouter(tags=["dtr"])


@router.put("/api/companies/{company_id}/dtr-records", response_model=DtrUpsertResponse)
def upsert_dtr_record_endpoint(
    company_id: int,
    payload: DtrRecordUpsertRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> DtrUpsertResponse:
    context = resolve_company_context(claims, company_id)
    result = upsert_dtr_record(
        db,
        payload,
        context,
        request_id=getattr(request.state, "request_id", None),
    )
    if result.error is not None:
        raise result.error

    return DtrUpsertResponse(
        message=result.message,
        record_id=result.record_id,
        action=result.action,
        changes=[
            FieldChangeRead(field_name=item.field_name, old_value=item.old_value, new_value=item.new_value)
            for item in result.changes
        ],
    )


@router.get(
    "/api/companies/{company_id}/employees/{employee_id}/schedule",
    response_model=EmployeeScheduleRead,
)
def get_employee_schedule_endpoint(
    company_id: int,
    employee_id: int,
    attendance_date: date = Query(...),
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> EmployeeScheduleRead:
    context = resolve_company_context(claims, company_id)
    require_attendance_read_access(context, message="You do not have permission to view employee schedules.")
    summary = describe_employee_schedule(
        db,
        company_id=company_id,
        employee_id=employee_id,
        attendance_date=attendance_date,
    )
    return EmployeeScheduleRead(name=summary.name, time_in=summary.time_in, time_out=summary.time_out)


@router.get(
    "/api/companies/{company_id}/employees/{employee_id}/leave-context",
    response_model=LeaveContextRead,
)
def get_employee_leave_context_endpoint(
    company_id: int,
    employee_id: int,
    attendance_date: date = Query(...),
    dtr_id: int | None = Query(default=None, ge=1),
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> LeaveContextRead:
    context = resolve_company_context(claims, company_id)
    require_attendance_read_access(context, message="You do not have permission to view employee leave balances.")
    leave_context = get_employee_leave_context(
        db,
        company_id=company_id,
        employee_id=employee_id,
        attendance_date=attendance_date,
        dtr_id=dtr_id,
    )
    return LeaveContextRead.model_validate(leave_context)


@router.put(
    "/api/companies/{company_id}/work-schedules/{schedule_id}",
    response_model=WorkScheduleRead,
)
def update_work_schedule_endpoint(
    company_id: int,
    schedule_id: int,
    payload: WorkScheduleUpsertRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> WorkScheduleRead:
    context = resolve_company_context(claims, company_id)
    if not can_manually_modify_dtr(context):
        raise AuthorizationError("Only Company Admin, HR Admin, or Super Admin can change work schedules.")

    schedule = update_work_schedule(db, company_id=company_id, schedule_id=schedule_id, payload=payload)
    read = to_work_schedule_read(schedule)
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=context.user_id,
        action="WORK_SCHEDULE_UPDATE",
        success=True,
        entity_type="WorkSchedule",
        entity_id=str(schedule.id),
        details=read.model_dump(),
        request_id=getattr(request.state, "request_id", None),
    )
    return read
