"""Leave usage reconciliation for manual DTR edits.

A DTR row owns at most one active USAGE entry in the leave ledger. Each save
converges that entry to the desired state derived from the row:

    existing  desired   action
    --------  -------   ------
    none      none      nothing
    none      some      apply
    some      none      reverse
    some(A)   some(A)   nothing (same type, year and amount within tolerance)
    some(A)   some(B)   reverse A, then apply B
"""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from dtr_engine.errors import LedgerInconsistencyError, NotFoundError
from dtr_engine.models import (
    AttendanceStatus,
    DailyTimeRecord,
    DayFraction,
    Employee,
    LeaveBalance,
    LeaveBalanceTransaction,
    LeaveBalanceTransactionType,
    LeaveType,
)
from dtr_engine.services.employees import get_company_employee
from dtr_engine.services.leave_ledger import (
    DTR_MANUAL_LEAVE_REFERENCE,
    apply_leave_usage,
    reverse_leave_usage,
    to_amount,
)
from dtr_engine.services.leave_policy import is_dtr_leave_option, list_company_leave_types
from dtr_engine.settings import get_settings

FULL_DAY = Decimal("1.00")
HALF_DAY = Decimal("0.50")


class LeaveUsageAction(str, enum.Enum):
    NONE = "NONE"
    UNCHANGED = "UNCHANGED"
    APPLIED = "APPLIED"
    REVERSED = "REVERSED"
    REPLACED = "REPLACED"


@dataclass(frozen=True)
class ActiveLeaveUsage:
    transaction_id: int
    leave_balance_id: int
    leave_type_id: int
    year: int
    amount: Decimal


@dataclass(frozen=True)
class DesiredLeaveUsage:
    leave_type_id: int
    year: int
    amount: Decimal


@dataclass(frozen=True)
class LeaveUsageOutcome:
    action: LeaveUsageAction
    active_transaction_id: int | None
    reversal_transaction_id: int | None = None
    usage_transaction_id: int | None = None


@dataclass(frozen=True)
class LeaveOption:
    leave_type_id: int
    name: str
    code: str
    current_balance: Decimal
    available_balance: Decimal


@dataclass(frozen=True)
class ActiveManualLeave:
    leave_type_id: int
    number_of_days: Decimal


@dataclass(frozen=True)
class EmployeeLeaveContext:
    year: int
    leave_options: list[LeaveOption]
    active_manual_leave: ActiveManualLeave | None


@dataclass(frozen=True)
class LedgerDiscrepancy:
    dtr_id: int
    employee_id: int
    attendance_date: date
    issue: str
    details: dict = field(default_factory=dict)


def leave_days_for(day_fraction: DayFraction) -> Decimal:
    return HALF_DAY if day_fraction == DayFraction.HALF else FULL_DAY


def _usage_from_entry(entry: LeaveBalanceTransaction) -> ActiveLeaveUsage:
    return ActiveLeaveUsage(
        transaction_id=entry.id,
        leave_balance_id=entry.leave_balance_id,
        leave_type_id=entry.leave_balance.leave_type_id,
        year=entry.leave_balance.year,
        amount=to_amount(entry.amount),
    )


def latest_dtr_leave_entry(db: Session, dtr_id: int) -> LeaveBalanceTransaction | None:
    return db.scalar(
        select(LeaveBalanceTransaction)
        .where(
            LeaveBalanceTransaction.reference_type == DTR_MANUAL_LEAVE_REFERENCE,
            LeaveBalanceTransaction.reference_id == str(dtr_id),
        )
        .order_by(LeaveBalanceTransaction.created_at.desc(), LeaveBalanceTransaction.id.desc())
        .limit(1)
    )


def resolve_active_leave_usage(db: Session, record: DailyTimeRecord | None) -> ActiveLeaveUsage | None:
    if record is None or record.id is None:
        return None

    if record.active_leave_usage_transaction_id is not None:
        entry = db.get(LeaveBalanceTransaction, record.active_leave_usage_transaction_id)
        if (
            entry is None
            or entry.transaction_type != LeaveBalanceTransactionType.USAGE
            or entry.reference_type != DTR_MANUAL_LEAVE_REFERENCE
            or entry.reference_id != str(record.id)
        ):
            raise LedgerInconsistencyError("DTR record points at a leave ledger entry that is not its active usage.")
        return _usage_from_entry(entry)

    # Rows saved before the pointer column existed.
    entry = latest_dtr_leave_entry(db, record.id)
    if entry is None or entry.transaction_type != LeaveBalanceTransactionType.USAGE:
        return None
    if entry.leave_balance.employee_id != record.employee_id:
        return None
    return _usage_from_entry(entry)


def desired_leave_usage(
    *,
    attendance_status: AttendanceStatus,
    leave_type: LeaveType | None,
    attendance_date: date,
    day_fraction: DayFraction,
) -> DesiredLeaveUsage | None:
    if attendance_status != AttendanceStatus.ON_LEAVE or leave_type is None or not leave_type.is_paid:
        return None
    return DesiredLeaveUsage(
        leave_type_id=leave_type.id,
        year=attendance_date.year,
        amount=leave_days_for(day_fraction),
    )


def usage_matches(existing: ActiveLeaveUsage, desired: DesiredLeaveUsage, tolerance: Decimal | None = None) -> bool:
    if tolerance is None:
        tolerance = get_settings().leave_amount_tolerance
    return (
        existing.leave_type_id == desired.leave_type_id
        and existing.year == desired.year
        and abs(existing.amount - desired.amount) < tolerance
    )


def reconcile_leave_usage(
    db: Session,
    *,
    record: DailyTimeRecord,
    existing: ActiveLeaveUsage | None,
    desired: DesiredLeaveUsage | None,
    processed_by: str | None,
) -> LeaveUsageOutcome:
    """Converge the ledger for ``record`` and update its active-usage pointer.

    ``record`` must already be flushed so its id can be used as the ledger
    reference. Errors propagate; the caller rolls back.
    """
    if existing is None and desired is None:
        record.active_leave_usage_transaction_id = None
        return LeaveUsageOutcome(action=LeaveUsageAction.NONE, active_transaction_id=None)

    if existing is not None and desired is not None and usage_matches(existing, desired):
        record.active_leave_usage_transaction_id = existing.transaction_id
        return LeaveUsageOutcome(action=LeaveUsageAction.UNCHANGED, active_transaction_id=existing.transaction_id)

    reversal_id: int | None = None
    if existing is not None:
        reversal = reverse_leave_usage(
            db,
            leave_balance_id=existing.leave_balance_id,
            amount=existing.amount,
            dtr_id=record.id,
            processed_by=processed_by,
        )
        reversal_id = reversal.id

    usage_id: int | None = None
    if desired is not None:
        usage = apply_leave_usage(
            db,
            employee_id=record.employee_id,
            leave_type_id=desired.leave_type_id,
            year=desired.year,
            amount=desired.amount,
            dtr_id=record.id,
            processed_by=processed_by,
        )
        usage_id = usage.id

    record.active_leave_usage_transaction_id = usage_id
    if existing is None:
        action = LeaveUsageAction.APPLIED
    elif desired is None:
        action = LeaveUsageAction.REVERSED
    else:
        action = LeaveUsageAction.REPLACED
    return LeaveUsageOutcome(
        action=action,
        active_transaction_id=usage_id,
        reversal_transaction_id=reversal_id,
        usage_transaction_id=usage_id,
    )


def _get_employee_dtr(db: Session, *, employee_id: int, dtr_id: int) -> DailyTimeRecord:
    record = db.scalar(
        select(DailyTimeRecord).where(
            DailyTimeRecord.id == dtr_id,
            DailyTimeRecord.employee_id == employee_id,
        )
    )
    if record is None:
        raise NotFoundError("DTR record not found for this employee.")
    return record


def get_employee_leave_context(
    db: Session,
    *,
    company_id: int,
    employee_id: int,
    attendance_date: date,
    dtr_id: int | None = None,
) -> EmployeeLeaveContext:
    employee = get_company_employee(db, company_id=company_id, employee_id=employee_id)
    year = attendance_date.year

    leave_types = [item for item in list_company_leave_types(db, company_id=company_id) if is_dtr_leave_option(item)]
    balances = {
        item.leave_type_id: item
        for item in db.scalars(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee.id,
                LeaveBalance.year == year,
            )
        ).all()
    }
    options = [
        LeaveOption(
            leave_type_id=item.id,
            name=item.name,
            code=item.code,
            current_balance=to_amount(balances[item.id].current_balance) if item.id in balances else to_amount(0),
            available_balance=to_amount(balances[item.id].available_balance) if item.id in balances else to_amount(0),
        )
        for item in leave_types
    ]

    active_manual_leave: ActiveManualLeave | None = None
    if dtr_id is not None:
        record = _get_employee_dtr(db, employee_id=employee.id, dtr_id=dtr_id)
        usage = resolve_active_leave_usage(db, record)
        usage_days = usage.amount if usage is not None and usage.year == year else to_amount(0)
        if record.leave_type_id is not None:
            active_manual_leave = ActiveManualLeave(leave_type_id=record.leave_type_id, number_of_days=usage_days)
        elif usage is not None and usage.year == year:
            active_manual_leave = ActiveManualLeave(leave_type_id=usage.leave_type_id, number_of_days=usage.amount)

    return EmployeeLeaveContext(year=year, leave_options=options, active_manual_leave=active_manual_leave)


def find_ledger_discrepancies(db: Session, *, company_id: int | None = None) -> list[LedgerDiscrepancy]:
    """List DTR rows whose leave state disagrees with the ledger.

    A consistent row has at most one unreversed DTR usage, the pointer names it,
    and it exists exactly when the row is ON_LEAVE with a paid leave type.
    """
    counts: dict[str, dict[LeaveBalanceTransactionType, int]] = defaultdict(dict)
    rows = db.execute(
        select(
            LeaveBalanceTransaction.reference_id,
            LeaveBalanceTransaction.transaction_type,
            func.count(LeaveBalanceTransaction.id),
        )
        .where(LeaveBalanceTransaction.reference_type == DTR_MANUAL_LEAVE_REFERENCE)
        .group_by(LeaveBalanceTransaction.reference_id, LeaveBalanceTransaction.transaction_type)
    ).all()
    for reference_id, transaction_type, count in rows:
        counts[str(reference_id)][transaction_type] = int(count)

    referenced_ids = [int(item) for item in counts if item.isdigit()]
    stmt = (
        select(DailyTimeRecord)
        .join(Employee, Employee.id == DailyTimeRecord.employee_id)
        .where(
            or_(
                DailyTimeRecord.attendance_status == AttendanceStatus.ON_LEAVE,
                DailyTimeRecord.active_leave_usage_transaction_id.is_not(None),
                DailyTimeRecord.id.in_(referenced_ids),
            )
        )
        .order_by(DailyTimeRecord.attendance_date.asc(), DailyTimeRecord.id.asc())
    )
    if company_id is not None:
        stmt = stmt.where(Employee.company_id == company_id)

    discrepancies: list[LedgerDiscrepancy] = []
    for record in db.scalars(stmt).all():

        def flag(issue: str, **details: object) -> None:
            discrepancies.append(
                LedgerDiscrepancy(
                    dtr_id=record.id,
                    employee_id=record.employee_id,
                    attendance_date=record.attendance_date,
                    issue=issue,
                    details=details,
                )
            )

        record_counts = counts.get(str(record.id), {})
        usage_count = record_counts.get(LeaveBalanceTransactionType.USAGE, 0)
        reversal_count = record_counts.get(LeaveBalanceTransactionType.ADJUSTMENT, 0)

        try:
            active = resolve_active_leave_usage(db, record)
        except LedgerInconsistencyError:
            flag("pointer_invalid", pointer=record.active_leave_usage_transaction_id)
            continue

        expected_net = 1 if active is not None else 0
        if usage_count - reversal_count != expected_net:
            flag("ledger_net_mismatch", usages=usage_count, reversals=reversal_count, expected=expected_net)

        leave_type = record.leave_type
        if leave_type is None and active is not None and record.attendance_status == AttendanceStatus.ON_LEAVE:
            # Legacy rows carry the leave type only on the ledger.
            leave_type = db.get(LeaveType, active.leave_type_id)
        should_have_usage = (
            record.attendance_status == AttendanceStatus.ON_LEAVE
            and leave_type is not None
            and leave_type.is_paid
        )
        if should_have_usage and active is None:
            flag("missing_usage", leave_type_id=record.leave_type_id)
        elif not should_have_usage and active is not None:
            flag("stale_usage", transaction_id=active.transaction_id)
        elif active is not None and active.leave_type_id != leave_type.id:
            flag("leave_type_mismatch", recorded=leave_type.id, charged=active.leave_type_id)

    return discrepancies
