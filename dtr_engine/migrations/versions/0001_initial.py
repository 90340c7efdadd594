"""Initial DTR and leave ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

attendance_status = postgresql.ENUM(
    "PRESENT",
    "ABSENT",
    "ON_LEAVE",
    "HOLIDAY",
    "REST_DAY",
    "SUSPENDED",
    "AWOL",
    name="attendance_status",
    create_type=False,
)
dtr_source = postgresql.ENUM("BIOMETRIC", "WEB", "MOBILE", "MANUAL", name="dtr_source", create_type=False)
dtr_approval_status = postgresql.ENUM("PENDING", "APPROVED", "REJECTED", name="dtr_approval_status", create_type=False)
leave_balance_transaction_type = postgresql.ENUM(
    "ACCRUAL",
    "USAGE",
    "FORFEITURE",
    "CONVERSION",
    "CARRY_OVER",
    "ADJUSTMENT",
    name="leave_balance_transaction_type",
    create_type=False,
)
audit_actor_type = postgresql.ENUM("USER", "SYSTEM", name="audit_actor_type", create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (
        attendance_status,
        dtr_source,
        dtr_approval_status,
        leave_balance_transaction_type,
        audit_actor_type,
    ):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("name", name="uq_companies_name"),
    )

    op.create_table(
        "work_schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("work_start_time", sa.Time(timezone=False), nullable=False),
        sa.Column("work_end_time", sa.Time(timezone=False), nullable=False),
        sa.Column("break_duration_mins", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("grace_period_mins", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("day_overrides", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "code", name="uq_work_schedules_company_code"),
    )
    op.create_index("ix_work_schedules_company_id", "work_schedules", ["company_id"])

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_number", sa.String(length=50), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("work_schedule_id", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["work_schedule_id"], ["work_schedules.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("company_id", "employee_number", name="uq_employees_company_number"),
    )
    op.create_index("ix_employees_company_id", "employees", ["company_id"])

    op.create_table(
        "leave_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "code", name="uq_leave_types_company_code"),
    )
    op.create_index("ix_leave_types_company_id", "leave_types", ["company_id"])

    op.create_table(
        "leave_balances",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("leave_type_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("opening_balance", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("credits_earned", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("credits_used", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("current_balance", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("pending_requests", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("available_balance", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["leave_type_id"], ["leave_types.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balances_employee_type_year"),
        sa.CheckConstraint("available_balance >= 0", name="ck_leave_balances_available_non_negative"),
    )
    op.create_index("ix_leave_balances_employee_id", "leave_balances", ["employee_id"])
    op.create_index("ix_leave_balances_leave_type_id", "leave_balances", ["leave_type_id"])

    op.create_table(
        "leave_balance_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("leave_balance_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", leave_balance_transaction_type, nullable=False),
        sa.Column("amount", sa.Numeric(6, 2), nullable=False),
        sa.Column("running_balance", sa.Numeric(6, 2), nullable=False),
        sa.Column("reference_type", sa.String(length=50), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["leave_balance_id"], ["leave_balances.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_leave_balance_transactions_leave_balance_id",
        "leave_balance_transactions",
        ["leave_balance_id"],
    )
    op.create_index("ix_leave_balance_transactions_reference_id", "leave_balance_transactions", ["reference_id"])
    op.create_index("ix_leave_balance_transactions_created_at", "leave_balance_transactions", ["created_at"])

    op.create_table(
        "daily_time_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("actual_time_in", sa.DateTime(timezone=False), nullable=True),
        sa.Column("actual_time_out", sa.DateTime(timezone=False), nullable=True),
        sa.Column("time_in_source", dtr_source, nullable=True),
        sa.Column("time_out_source", dtr_source, nullable=True),
        sa.Column("attendance_status", attendance_status, nullable=False, server_default=sa.text("'PRESENT'")),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("hours_worked", sa.Numeric(5, 2), nullable=True),
        sa.Column("tardiness_mins", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("undertime_mins", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_hours", sa.Numeric(5, 2), nullable=True),
        sa.Column("night_diff_hours", sa.Numeric(5, 2), nullable=True),
        sa.Column("approval_status", dtr_approval_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "attendance_date", name="uq_daily_time_records_employee_date"),
        sa.CheckConstraint(
            "(actual_time_in IS NULL) = (actual_time_out IS NULL)",
            name="ck_daily_time_records_time_pair",
        ),
    )
    op.create_index("ix_daily_time_records_employee_id", "daily_time_records", ["employee_id"])
    op.create_index("ix_daily_time_records_attendance_date", "daily_time_records", ["attendance_date"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("daily_time_records")
    op.drop_table("leave_balance_transactions")
    op.drop_table("leave_balances")
    op.drop_table("leave_types")
    op.drop_table("employees")
    op.drop_table("work_schedules")
    op.drop_table("companies")

    bind = op.get_bind()
    for enum_type in (
        audit_actor_type,
        leave_balance_transaction_type,
        dtr_approval_status,
        dtr_source,
        attendance_status,
    ):
        enum_type.drop(bind, checkfirst=True)
