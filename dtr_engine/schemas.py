from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dtr_engine.models import AttendanceStatus, DayFraction
from dtr_engine.services.wall_clock import parse_hhmm

HHMM_PATTERN = r"^\d{2}:\d{2}$"

WeekdayName = Literal["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]

# Cached views collaborators refresh after a successful DTR write.
DTR_INVALIDATION_KEYS: tuple[str, ...] = (
    "dtr",
    "biometric-sync",
    "dashboard",
    "leave-balances",
    "employee-portal",
)


def _validate_hhmm(value: str | None, field_name: str) -> None:
    if value is None:
        return
    try:
        parse_hhmm(value)
    except ValueError as exc:
        raise ValueError(f"{field_name} must be a valid HH:MM time.") from exc


class DtrRecordUpsertRequest(BaseModel):
    employee_id: int = Field(ge=1)
    attendance_date: date
    dtr_id: int | None = Field(default=None, ge=1)
    actual_time_in: str | None = Field(default=None, pattern=HHMM_PATTERN)
    actual_time_out: str | None = Field(default=None, pattern=HHMM_PATTERN)
    attendance_status: AttendanceStatus
    leave_type_id: int | None = Field(default=None, ge=1)
    day_fraction: DayFraction | None = None
    remarks: str | None = Field(default=None, max_length=2000)

    @field_validator("actual_time_in", "actual_time_out", "remarks", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _validate_clock_values(self) -> "DtrRecordUpsertRequest":
        _validate_hhmm(self.actual_time_in, "actual_time_in")
        _validate_hhmm(self.actual_time_out, "actual_time_out")
        return self


class FieldChangeRead(BaseModel):
    field_name: str
    old_value: Any = None
    new_value: Any = None


class DtrUpsertResponse(BaseModel):
    ok: bool = True
    message: str
    record_id: int
    action: Literal["CREATE", "UPDATE"]
    changes: list[FieldChangeRead] = Field(default_factory=list)
    invalidate: list[str] = Field(default_factory=lambda: list(DTR_INVALIDATION_KEYS))


class EmployeeScheduleRead(BaseModel):
    name: str
    time_in: str
    time_out: str

    model_config = ConfigDict(from_attributes=True)


class LeaveOptionRead(BaseModel):
    leave_type_id: int
    name: str
    code: str
    current_balance: Decimal
    available_balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class ActiveManualLeaveRead(BaseModel):
    leave_type_id: int
    number_of_days: Decimal

    model_config = ConfigDict(from_attributes=True)


class LeaveContextRead(BaseModel):
    year: int
    leave_options: list[LeaveOptionRead] = Field(default_factory=list)
    active_manual_leave: ActiveManualLeaveRead | None = None

    model_config = ConfigDict(from_attributes=True)


class DayOverrideRule(BaseModel):
    kind: Literal["NOT_WORKING", "USE_BASE", "EXPLICIT"]
    start_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    end_time: str | None = Field(default=None, pattern=HHMM_PATTERN)

    @model_validator(mode="after")
    def _validate_times(self) -> "DayOverrideRule":
        if self.kind == "EXPLICIT":
            if self.start_time is None or self.end_time is None:
                raise ValueError("EXPLICIT day override requires start_time and end_time.")
            _validate_hhmm(self.start_time, "start_time")
            _validate_hhmm(self.end_time, "end_time")
            if self.start_time == self.end_time:
                raise ValueError("start_time and end_time must differ.")
        elif self.start_time is not None or self.end_time is not None:
            raise ValueError(f"{self.kind} day override must not carry start_time or end_time.")
        return self


class WorkScheduleUpsertRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=2, max_length=255)
    work_start_time: str = Field(pattern=HHMM_PATTERN)
    work_end_time: str = Field(pattern=HHMM_PATTERN)
    break_duration_mins: int = Field(default=60, ge=0, le=720)
    grace_period_mins: int = Field(default=0, ge=0, le=240)
    day_overrides: dict[WeekdayName, DayOverrideRule] = Field(default_factory=dict)
    is_active: bool = True

    @model_validator(mode="after")
    def _validate_base_hours(self) -> "WorkScheduleUpsertRequest":
        _validate_hhmm(self.work_start_time, "work_start_time")
        _validate_hhmm(self.work_end_time, "work_end_time")
        if self.work_start_time == self.work_end_time:
            raise ValueError("work_start_time and work_end_time must differ.")
        self.code = self.code.strip().upper()
        self.name = self.name.strip()
        return self


class WorkScheduleRead(BaseModel):
    id: int
    company_id: int | None = None
    code: str
    name: str
    work_start_time: str
    work_end_time: str
    break_duration_mins: int
    grace_period_mins: int
    day_overrides: dict[str, dict[str, str]] = Field(default_factory=dict)
    is_active: bool

