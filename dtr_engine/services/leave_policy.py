from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from dtr_engine.errors import NotFoundError, ValidationError
from dtr_engine.models import LeaveType

EMERGENCY_LEAVE_NAMES = frozenset({"EMERGENCY LEAVE"})
EMERGENCY_LEAVE_CODES = frozenset({"EL", "EMERGENCY_LEAVE", "EMERGENCYLEAVE", "EMERGENCY"})
VACATION_LEAVE_NAMES = frozenset({"VACATION LEAVE"})
VACATION_LEAVE_CODES = frozenset({"VL", "VACATION_LEAVE", "VACATIONLEAVE", "VACATION"})

# Leave types offered on the DTR leave picker, keyed by lowercase alphanumerics.
DTR_LEAVE_NAME_KEYS = frozenset(
    {
        "sickleave",
        "vacationleave",
        "compensarytimeoff",
        "compensatorytimeoff",
        "leavewithoutpay",
        "mandatoryleave",
    }
)
DTR_LEAVE_CODE_KEYS = frozenset({"sl", "vl", "cto", "lwop", "mandatory"})


@dataclass(frozen=True)
class LeaveCharge:
    source_leave_type_name: str
    charge_leave_type_id: int | None
    charge_leave_type_name: str | None


def _normalize_name(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip().upper())


def _normalize_code(value: str) -> str:
    return re.sub(r"[\s-]+", "_", value.strip().upper())


def _lookup_key(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.strip().lower())


def is_emergency_leave(leave_type: LeaveType) -> bool:
    return (
        _normalize_name(leave_type.name) in EMERGENCY_LEAVE_NAMES
        or _normalize_code(leave_type.code) in EMERGENCY_LEAVE_CODES
    )


def is_vacation_leave(leave_type: LeaveType) -> bool:
    return (
        _normalize_name(leave_type.name) in VACATION_LEAVE_NAMES
        or _normalize_code(leave_type.code) in VACATION_LEAVE_CODES
    )


def is_dtr_leave_option(leave_type: LeaveType) -> bool:
    if _lookup_key(leave_type.name) in DTR_LEAVE_NAME_KEYS:
        return True
    return _lookup_key(leave_type.code) in DTR_LEAVE_CODE_KEYS


def list_company_leave_types(db: Session, *, company_id: int, active_only: bool = True) -> list[LeaveType]:
    stmt = (
        select(LeaveType)
        .where(or_(LeaveType.company_id == company_id, LeaveType.company_id.is_(None)))
        .order_by(LeaveType.display_order.asc(), LeaveType.name.asc())
    )
    if active_only:
        stmt = stmt.where(LeaveType.is_active.is_(True))
    return list(db.scalars(stmt).all())


def get_company_leave_type(db: Session, *, company_id: int, leave_type_id: int) -> LeaveType:
    leave_type = db.get(LeaveType, leave_type_id)
    if (
        leave_type is None
        or not leave_type.is_active
        or (leave_type.company_id is not None and leave_type.company_id != company_id)
    ):
        raise NotFoundError("Leave type is not available for this company.")
    return leave_type


def _pick_vacation_leave_type(candidates: Iterable[LeaveType], company_id: int) -> LeaveType | None:
    vacation_types = [item for item in candidates if is_vacation_leave(item)]
    if not vacation_types:
        return None
    for item in vacation_types:
        if item.company_id == company_id:
            return item
    for item in vacation_types:
        if item.company_id is None:
            return item
    return vacation_types[0]


def decide_leave_charge(
    source: LeaveType,
    *,
    company_id: int,
    available_leave_types: Iterable[LeaveType],
) -> LeaveCharge:
    """Decide which balance a leave of type ``source`` is charged against.

    Emergency leave draws on the company's vacation leave, unpaid leave draws on
    nothing, and every other paid type draws on its own balance.
    """
    if is_emergency_leave(source):
        vacation = _pick_vacation_leave_type(available_leave_types, company_id)
        if vacation is None:
            raise ValidationError(
                "Emergency Leave requires a configured Vacation Leave type in the company settings."
            )
        return LeaveCharge(
            source_leave_type_name=source.name,
            charge_leave_type_id=vacation.id,
            charge_leave_type_name=vacation.name,
        )

    if not source.is_paid:
        return LeaveCharge(source_leave_type_name=source.name, charge_leave_type_id=None, charge_leave_type_name=None)

    return LeaveCharge(
        source_leave_type_name=source.name,
        charge_leave_type_id=source.id,
        charge_leave_type_name=source.name,
    )


def resolve_leave_charge(db: Session, *, company_id: int, leave_type_id: int) -> LeaveCharge:
    source = db.get(LeaveType, leave_type_id)
    if source is None:
        raise NotFoundError("Selected leave type is no longer available.")
    return decide_leave_charge(
        source,
        company_id=company_id,
        available_leave_types=list_company_leave_types(db, company_id=company_id, active_only=False),
    )
