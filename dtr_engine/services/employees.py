from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from dtr_engine.errors import NotFoundError
from dtr_engine.models import Employee


def get_company_employee(db: Session, *, company_id: int, employee_id: int) -> Employee:
    employee = db.scalar(
        select(Employee).where(
            Employee.id == employee_id,
            Employee.company_id == company_id,
            Employee.deleted_at.is_(None),
        )
    )
    if employee is None:
        raise NotFoundError("Employee not found for this company.")
    return employee
