#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dtr_engine.db import SessionLocal, engine
from dtr_engine.models import LeaveBalance
from dtr_engine.services.leave_usage import find_ledger_discrepancies
from dtr_engine.services.schema_guard import verify_runtime_schema


def _balance_arithmetic_issues(db: Session) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for balance in db.scalars(select(LeaveBalance).order_by(LeaveBalance.id.asc())).all():
        expected_available = balance.current_balance - balance.pending_requests
        if balance.available_balance != expected_available or balance.available_balance < 0:
            rows.append(
                {
                    "leave_balance_id": balance.id,
                    "employee_id": balance.employee_id,
                    "leave_type_id": balance.leave_type_id,
                    "year": balance.year,
                    "current_balance": str(balance.current_balance),
                    "pending_requests": str(balance.pending_requests),
                    "available_balance": str(balance.available_balance),
                }
            )
    return rows


def run(*, company_id: int | None = None) -> dict[str, Any]:
    report: dict[str, Any] = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "company_id": company_id,
        "checks": [],
    }

    def add(name: str, status: str, details: dict[str, Any]) -> None:
        report["checks"].append({"name": name, "status": status, "details": details})

    schema_result = verify_runtime_schema(engine)
    add("schema_guard", "ok" if schema_result.ok else "fail", schema_result.to_dict())
    if not schema_result.ok:
        return report

    with SessionLocal() as db:
        discrepancies = find_ledger_discrepancies(db, company_id=company_id)
        add(
            "dtr_leave_usage_discrepancies",
            "fail" if discrepancies else "ok",
            {
                "count": len(discrepancies),
                "rows": [
                    {
                        "dtr_id": item.dtr_id,
                        "employee_id": item.employee_id,
                        "attendance_date": item.attendance_date.isoformat(),
                        "issue": item.issue,
                        "details": item.details,
                    }
                    for item in discrepancies[:200]
                ],
            },
        )

        balance_rows = _balance_arithmetic_issues(db)
        add(
            "leave_balance_available_arithmetic",
            "fail" if balance_rows else "ok",
            {"count": len(balance_rows), "rows": balance_rows[:200]},
        )

    return report


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check DTR leave usage against the leave ledger.")
    parser.add_argument("--company-id", type=int, default=None)
    args = parser.parse_args(argv)

    report = run(company_id=args.company_id)
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0 if all(check["status"] == "ok" for check in report["checks"]) else 1


if __name__ == "__main__":
    raise SystemExit(main())
