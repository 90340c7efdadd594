from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dtr_engine.db import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    ON_LEAVE = "ON_LEAVE"
    HOLIDAY = "HOLIDAY"
    REST_DAY = "REST_DAY"
    SUSPENDED = "SUSPENDED"
    AWOL = "AWOL"


class DtrSource(str, enum.Enum):
    BIOMETRIC = "BIOMETRIC"
    WEB = "WEB"
    MOBILE = "MOBILE"
    MANUAL = "MANUAL"


_dtr_source_enum = Enum(DtrSource, name="dtr_source")


class DtrApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DayFraction(str, enum.Enum):
    FULL = "FULL"
    HALF = "HALF"


class LeaveBalanceTransactionType(str, enum.Enum):
    ACCRUAL = "ACCRUAL"
    USAGE = "USAGE"
    FORFEITURE = "FORFEITURE"
    CONVERSION = "CONVERSION"
    CARRY_OVER = "CARRY_OVER"
    ADJUSTMENT = "ADJUSTMENT"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    employees: Mapped[list[Employee]] = relationship(back_populates="company")


class WorkSchedule(Base):
    __tablename__ = "work_schedules"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_work_schedules_company_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int | None] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    work_start_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    work_end_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    break_duration_mins: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default=text("60"))
    grace_period_mins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    # Weekday name -> {"kind": "NOT_WORKING" | "USE_BASE" | "EXPLICIT", "start_time", "end_time"}
    day_overrides: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    employees: Mapped[list[Employee]] = relationship(back_populates="work_schedule")


class Employee(Base):
    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("company_id", "employee_number", name="uq_employees_company_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    work_schedule_id: Mapped[int | None] = mapped_column(
        ForeignKey("work_schedules.id", ondelete="SET NULL"),
        nullable=True,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    company: Mapped[Company] = relationship(back_populates="employees")
    work_schedule: Mapped[WorkSchedule | None] = relationship(back_populates="employees")
    leave_balances: Mapped[list[LeaveBalance]] = relationship(back_populates="employee")
    daily_time_records: Mapped[list[DailyTimeRecord]] = relationship(back_populates="employee")


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_leave_types_company_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int | None] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balances_employee_type_year"),
        CheckConstraint("available_balance >= 0", name="ck_leave_balances_available_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    leave_type_id: Mapped[int] = mapped_column(
        ForeignKey("leave_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    credits_earned: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    credits_used: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    current_balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    pending_requests: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    available_balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    employee: Mapped[Employee] = relationship(back_populates="leave_balances")
    leave_type: Mapped[LeaveType] = relationship()
    transactions: Mapped[list[LeaveBalanceTransaction]] = relationship(back_populates="leave_balance")


class LeaveBalanceTransaction(Base):
    __tablename__ = "leave_balance_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    leave_balance_id: Mapped[int] = mapped_column(
        ForeignKey("leave_balances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_type: Mapped[LeaveBalanceTransactionType] = mapped_column(
        Enum(LeaveBalanceTransactionType, name="leave_balance_transaction_type"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    running_balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )

    leave_balance: Mapped[LeaveBalance] = relationship(back_populates="transactions")


class DailyTimeRecord(Base):
    __tablename__ = "daily_time_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "attendance_date", name="uq_daily_time_records_employee_date"),
        CheckConstraint(
            "(actual_time_in IS NULL) = (actual_time_out IS NULL)",
            name="ck_daily_time_records_time_pair",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # Naive wall-clock values anchored to attendance_date.
    actual_time_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    actual_time_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    time_in_source: Mapped[DtrSource | None] = mapped_column(_dtr_source_enum, nullable=True)
    time_out_source: Mapped[DtrSource | None] = mapped_column(_dtr_source_enum, nullable=True)
    attendance_status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.PRESENT,
        server_default=text("'PRESENT'"),
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    day_fraction: Mapped[DayFraction] = mapped_column(
        Enum(DayFraction, name="dtr_day_fraction"),
        nullable=False,
        default=DayFraction.FULL,
        server_default=text("'FULL'"),
    )
    leave_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("leave_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    active_leave_usage_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("leave_balance_transactions.id", ondelete="SET NULL"),
        nullable=True,
    )
    hours_worked: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    tardiness_mins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    undertime_mins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    overtime_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    night_diff_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    approval_status: Mapped[DtrApprovalStatus] = mapped_column(
        Enum(DtrApprovalStatus, name="dtr_approval_status"),
        nullable=False,
        default=DtrApprovalStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    employee: Mapped[Employee] = relationship(back_populates="daily_time_records")
    leave_type: Mapped[LeaveType | None] = relationship()
    active_leave_usage_transaction: Mapped[LeaveBalanceTransaction | None] = relationship()


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
