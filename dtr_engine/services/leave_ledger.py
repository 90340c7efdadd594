"""Read-modify-write helpers for LeaveBalance rows and their append-only ledger.

Every mutation locks the balance row, recomputes ``available = current - pending``
and appends exactly one LeaveBalanceTransaction. Callers own the transaction
boundary; nothing here commits.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dtr_engine.errors import InsufficientBalanceError, LedgerInconsistencyError, NotFoundError, ValidationError
from dtr_engine.models import LeaveBalance, LeaveBalanceTransaction, LeaveBalanceTransactionType

logger = logging.getLogger("dtr_engine.leave_ledger")

DTR_MANUAL_LEAVE_REFERENCE = "DTR_MANUAL_LEAVE"
LEAVE_REQUEST_REFERENCE = "LEAVE_REQUEST"

AMOUNT_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")


def to_amount(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def _positive_amount(value: Decimal | int | float | str) -> Decimal:
    amount = to_amount(value)
    if amount <= 0:
        raise ValidationError("Leave amount must be greater than zero.")
    return amount


def get_leave_balance_for_update(
    db: Session,
    *,
    employee_id: int,
    leave_type_id: int,
    year: int,
) -> LeaveBalance | None:
    return db.scalar(
        select(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        .with_for_update()
    )


def require_leave_balance(
    db: Session,
    *,
    employee_id: int,
    leave_type_id: int,
    year: int,
) -> LeaveBalance:
    balance = get_leave_balance_for_update(
        db,
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
    )
    if balance is None:
        raise NotFoundError(f"No leave balance found for {year}. Please initialize yearly leave balances first.")
    return balance


def _lock_balance_by_id(db: Session, leave_balance_id: int) -> LeaveBalance:
    balance = db.scalar(select(LeaveBalance).where(LeaveBalance.id == leave_balance_id).with_for_update())
    if balance is None:
        raise LedgerInconsistencyError("Leave balance referenced by the prior DTR leave deduction no longer exists.")
    return balance


def _refresh_available(balance: LeaveBalance) -> None:
    available = to_amount(balance.current_balance) - to_amount(balance.pending_requests)
    if available < 0:
        raise InsufficientBalanceError("Leave balance computation failed. Available balance cannot be negative.")
    balance.available_balance = available


def _append_transaction(
    db: Session,
    *,
    balance: LeaveBalance,
    transaction_type: LeaveBalanceTransactionType,
    amount: Decimal,
    reference_type: str,
    reference_id: str,
    remarks: str,
    processed_by: str | None,
) -> LeaveBalanceTransaction:
    entry = LeaveBalanceTransaction(
        leave_balance_id=balance.id,
        transaction_type=transaction_type,
        amount=amount,
        running_balance=to_amount(balance.current_balance),
        reference_type=reference_type,
        reference_id=reference_id,
        remarks=remarks,
        processed_by=processed_by,
    )
    db.add(entry)
    db.flush()
    return entry


def apply_leave_usage(
    db: Session,
    *,
    employee_id: int,
    leave_type_id: int,
    year: int,
    amount: Decimal,
    dtr_id: int,
    processed_by: str | None,
) -> LeaveBalanceTransaction:
    days = _positive_amount(amount)
    balance = require_leave_balance(db, employee_id=employee_id, leave_type_id=leave_type_id, year=year)

    available = to_amount(balance.current_balance) - to_amount(balance.pending_requests)
    if available < days:
        raise InsufficientBalanceError(
            f"Insufficient leave balance. Available: {available}, required: {days}."
        )

    balance.current_balance = to_amount(balance.current_balance) - days
    balance.credits_used = to_amount(balance.credits_used) + days
    _refresh_available(balance)

    entry = _append_transaction(
        db,
        balance=balance,
        transaction_type=LeaveBalanceTransactionType.USAGE,
        amount=days,
        reference_type=DTR_MANUAL_LEAVE_REFERENCE,
        reference_id=str(dtr_id),
        remarks=f"Applied {days} day(s) for manual DTR ON_LEAVE adjustment.",
        processed_by=processed_by,
    )
    logger.info(
        "leave_usage_applied",
        extra={
            "dtr_id": dtr_id,
            "employee_id": employee_id,
            "leave_type_id": leave_type_id,
            "year": year,
            "amount": days,
            "transaction_id": entry.id,
            "current_balance": balance.current_balance,
        },
    )
    return entry


def reverse_leave_usage(
    db: Session,
    *,
    leave_balance_id: int,
    amount: Decimal,
    dtr_id: int,
    processed_by: str | None,
) -> LeaveBalanceTransaction:
    days = _positive_amount(amount)
    balance = _lock_balance_by_id(db, leave_balance_id)

    # A reversal never clamps; short used-credits mean the books were already off.
    if to_amount(balance.credits_used) < days:
        raise LedgerInconsistencyError(
            "Unable to reverse prior DTR leave deduction because used credits are lower than expected."
        )

    balance.current_balance = to_amount(balance.current_balance) + days
    balance.credits_used = to_amount(balance.credits_used) - days
    _refresh_available(balance)

    entry = _append_transaction(
        db,
        balance=balance,
        transaction_type=LeaveBalanceTransactionType.ADJUSTMENT,
        amount=days,
        reference_type=DTR_MANUAL_LEAVE_REFERENCE,
        reference_id=str(dtr_id),
        remarks=f"Reversed {days} day(s) from manual DTR ON_LEAVE adjustment.",
        processed_by=processed_by,
    )
    logger.info(
        "leave_usage_reversed",
        extra={
            "dtr_id": dtr_id,
            "leave_balance_id": leave_balance_id,
            "amount": days,
            "transaction_id": entry.id,
            "current_balance": balance.current_balance,
        },
    )
    return entry


def reserve_leave_for_request(
    db: Session,
    *,
    employee_id: int,
    leave_type_id: int,
    year: int,
    amount: Decimal,
    request_id: str,
    request_number: str,
    processed_by: str | None,
) -> LeaveBalanceTransaction:
    days = _positive_amount(amount)
    balance = require_leave_balance(db, employee_id=employee_id, leave_type_id=leave_type_id, year=year)

    available = to_amount(balance.current_balance) - to_amount(balance.pending_requests)
    if available < days:
        raise InsufficientBalanceError("Insufficient leave balance for this request.")

    balance.pending_requests = to_amount(balance.pending_requests) + days
    _refresh_available(balance)

    return _append_transaction(
        db,
        balance=balance,
        transaction_type=LeaveBalanceTransactionType.ADJUSTMENT,
        amount=-days,
        reference_type=LEAVE_REQUEST_REFERENCE,
        reference_id=request_id,
        remarks=f"Reserved {days} day(s) for leave request {request_number}",
        processed_by=processed_by,
    )


def release_leave_reservation(
    db: Session,
    *,
    employee_id: int,
    leave_type_id: int,
    year: int,
    amount: Decimal,
    request_id: str,
    request_number: str,
    processed_by: str | None,
) -> LeaveBalanceTransaction:
    days = _positive_amount(amount)
    balance = get_leave_balance_for_update(db, employee_id=employee_id, leave_type_id=leave_type_id, year=year)
    if balance is None:
        raise NotFoundError(f"No leave balance found for {year}.")

    if to_amount(balance.pending_requests) < days:
        raise LedgerInconsistencyError(
            "Leave balance reservation is inconsistent. Pending requests are lower than the request duration."
        )

    balance.pending_requests = to_amount(balance.pending_requests) - days
    _refresh_available(balance)

    return _append_transaction(
        db,
        balance=balance,
        transaction_type=LeaveBalanceTransactionType.ADJUSTMENT,
        amount=days,
        reference_type=LEAVE_REQUEST_REFERENCE,
        reference_id=request_id,
        remarks=f"Released {days} day(s) back to available balance for {request_number}",
        processed_by=processed_by,
    )


def consume_leave_reservation(
    db: Session,
    *,
    employee_id: int,
    leave_type_id: int,
    year: int,
    amount: Decimal,
    request_id: str,
    request_number: str,
    processed_by: str | None,
) -> LeaveBalanceTransaction:
    days = _positive_amount(amount)
    balance = get_leave_balance_for_update(db, employee_id=employee_id, leave_type_id=leave_type_id, year=year)
    if balance is None:
        raise NotFoundError(f"No leave balance found for {year}.")

    if to_amount(balance.pending_requests) < days:
        raise LedgerInconsistencyError(
            "Leave balance reservation is inconsistent. Pending requests are lower than the request duration."
        )
    if to_amount(balance.current_balance) < days:
        raise InsufficientBalanceError("Leave balance is insufficient to finalize this approval.")

    balance.current_balance = to_amount(balance.current_balance) - days
    balance.pending_requests = to_amount(balance.pending_requests) - days
    balance.credits_used = to_amount(balance.credits_used) + days
    _refresh_available(balance)

    return _append_transaction(
        db,
        balance=balance,
        transaction_type=LeaveBalanceTransactionType.USAGE,
        amount=days,
        reference_type=LEAVE_REQUEST_REFERENCE,
        reference_id=request_id,
        remarks=f"Consumed {days} day(s) for approved leave request {request_number}",
        processed_by=processed_by,
    )
