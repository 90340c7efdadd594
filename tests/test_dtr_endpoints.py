from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import time
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from dtr_engine.db import get_db
from dtr_engine.main import app
from dtr_engine.models import AuditLog, DailyTimeRecord
from dtr_engine.schemas import DTR_INVALIDATION_KEYS
from dtr_engine.security import require_user
from tests.sqlite_support import (
    create_session_factory,
    seed_company,
    seed_employee,
    seed_leave_balance,
    seed_leave_type,
    seed_schedule,
)


def _override_get_db(db: Session):  # type: ignore[no-untyped-def]
    def _override() -> Generator[Session, None, None]:
        yield db

    return _override


def _claims(company_id: int, role: str | None, *, is_super_admin: bool = False) -> dict[str, Any]:
    roles = {str(company_id): role} if role else {}
    return {"sub": "7", "company_roles": roles, "is_super_admin": is_super_admin, "typ": "access"}


class DtrEndpointTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = create_session_factory()()
        company = seed_company(self.db)
        self.company_id = company.id
        self.schedule = seed_schedule(
            self.db,
            company_id=company.id,
            day_overrides={"SUNDAY": {"kind": "NOT_WORKING"}},
        )
        self.night_schedule = seed_schedule(
            self.db,
            company_id=company.id,
            code="NIGHT",
            name="Night Shift",
            start=time(22, 0),
            end=time(6, 0),
        )
        self.employee = seed_employee(self.db, company_id=company.id, work_schedule_id=self.schedule.id)
        self.vacation = seed_leave_type(self.db, company_id=company.id, code="VL", name="Vacation Leave")
        self.vacation_balance = seed_leave_balance(
            self.db,
            employee_id=self.employee.id,
            leave_type_id=self.vacation.id,
            year=2026,
            current="0.50",
        )
        self.db.commit()
        app.dependency_overrides[get_db] = _override_get_db(self.db)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.db.close()

    def _as(self, role: str | None, *, is_super_admin: bool = False) -> TestClient:
        app.dependency_overrides[require_user] = lambda: _claims(
            self.company_id, role, is_super_admin=is_super_admin
        )
        return TestClient(app)

    def _dtr_payload(self, **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "employee_id": self.employee.id,
            "attendance_date": "2026-03-09",
            "actual_time_in": "08:00",
            "actual_time_out": "17:00",
            "attendance_status": "PRESENT",
        }
        payload.update(overrides)
        return payload


class DtrRecordEndpointTests(DtrEndpointTestBase):
    def test_hr_admin_creates_record(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.put(f"/api/companies/{self.company_id}/dtr-records", json=self._dtr_payload())

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["action"], "CREATE")
        self.assertEqual(body["message"], "DTR record created and approved.")
        self.assertEqual(body["invalidate"], list(DTR_INVALIDATION_KEYS))
        changed = {item["field_name"]: item["new_value"] for item in body["changes"]}
        self.assertEqual(changed["hoursWorked"], "8.00")

        record = self.db.scalar(select(DailyTimeRecord))
        assert record is not None
        self.assertEqual(body["record_id"], record.id)

    def test_payroll_admin_is_forbidden(self) -> None:
        client = self._as("PAYROLL_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/dtr-records",
            json=self._dtr_payload(),
            headers={"X-Request-Id": "req-403"},
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json(),
            {
                "error": {
                    "code": "FORBIDDEN",
                    "message": "Only Company Admin, HR Admin, or Super Admin can manually modify DTR records.",
                    "request_id": "req-403",
                }
            },
        )
        self.assertIsNone(self.db.scalar(select(DailyTimeRecord)))

    def test_foreign_company_is_forbidden(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.put(f"/api/companies/{self.company_id + 1}/dtr-records", json=self._dtr_payload())

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["message"], "You do not have access to this company.")

    def test_insufficient_balance_maps_to_conflict(self) -> None:
        client = self._as("COMPANY_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/dtr-records",
            json=self._dtr_payload(
                actual_time_in=None,
                actual_time_out=None,
                attendance_status="ON_LEAVE",
                leave_type_id=self.vacation.id,
            ),
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "INSUFFICIENT_BALANCE")
        self.assertIsNone(self.db.scalar(select(DailyTimeRecord)))

    def test_malformed_clock_value_is_rejected(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/dtr-records",
            json=self._dtr_payload(actual_time_in="8:00"),
        )

        self.assertEqual(response.status_code, 422)
        error = response.json()["error"]
        self.assertEqual(error["code"], "VALIDATION_ERROR")
        self.assertTrue(error["message"].startswith("actual_time_in"))

    def test_business_validation_is_reported_verbatim(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/dtr-records",
            json=self._dtr_payload(actual_time_out=""),
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(
            response.json()["error"]["message"],
            "Both time in and time out are required when providing attendance time.",
        )

    def test_missing_bearer_token(self) -> None:
        client = TestClient(app)

        response = client.put(f"/api/companies/{self.company_id}/dtr-records", json=self._dtr_payload())

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")


class EmployeeLookupEndpointTests(DtrEndpointTestBase):
    def test_schedule_lookup(self) -> None:
        client = self._as("PAYROLL_ADMIN")

        response = client.get(
            f"/api/companies/{self.company_id}/employees/{self.employee.id}/schedule",
            params={"attendance_date": "2026-03-09"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"name": "Regular Day Shift", "time_in": "08:00", "time_out": "17:00"})

    def test_schedule_lookup_on_rest_day(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.get(
            f"/api/companies/{self.company_id}/employees/{self.employee.id}/schedule",
            params={"attendance_date": "2026-03-15"},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["message"], "Selected day is configured as rest day.")

    def test_employee_role_cannot_view_schedules(self) -> None:
        client = self._as("EMPLOYEE")

        response = client.get(
            f"/api/companies/{self.company_id}/employees/{self.employee.id}/schedule",
            params={"attendance_date": "2026-03-09"},
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json()["error"]["message"],
            "You do not have permission to view employee schedules.",
        )

    def test_leave_context(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.get(
            f"/api/companies/{self.company_id}/employees/{self.employee.id}/leave-context",
            params={"attendance_date": "2026-03-09"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["year"], 2026)
        self.assertIsNone(body["active_manual_leave"])
        self.assertEqual(len(body["leave_options"]), 1)
        option = body["leave_options"][0]
        self.assertEqual(option["leave_type_id"], self.vacation.id)
        self.assertEqual(option["code"], "VL")
        self.assertEqual(option["available_balance"], "0.50")


class WorkScheduleEndpointTests(DtrEndpointTestBase):
    def _schedule_payload(self, **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": "reg",
            "name": "Regular Day Shift",
            "work_start_time": "07:00",
            "work_end_time": "16:00",
            "break_duration_mins": 60,
            "grace_period_mins": 5,
            "day_overrides": {
                "SATURDAY": {"kind": "EXPLICIT", "start_time": "08:00", "end_time": "12:00"},
                "SUNDAY": {"kind": "NOT_WORKING"},
            },
        }
        payload.update(overrides)
        return payload

    def test_update_schedule(self) -> None:
        client = self._as("COMPANY_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/work-schedules/{self.schedule.id}",
            json=self._schedule_payload(),
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["code"], "REG")
        self.assertEqual(body["work_start_time"], "07:00")
        self.assertEqual(body["grace_period_mins"], 5)
        self.assertEqual(body["day_overrides"]["SUNDAY"], {"kind": "NOT_WORKING"})
        self.assertEqual(
            body["day_overrides"]["SATURDAY"],
            {"kind": "EXPLICIT", "start_time": "08:00", "end_time": "12:00"},
        )
        self.assertEqual(body["day_overrides"]["MONDAY"], {"kind": "USE_BASE"})

        audit = self.db.scalar(select(AuditLog).where(AuditLog.action == "WORK_SCHEDULE_UPDATE"))
        assert audit is not None
        self.assertEqual(audit.entity_id, str(self.schedule.id))

    def test_duplicate_code_is_rejected(self) -> None:
        client = self._as("COMPANY_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/work-schedules/{self.schedule.id}",
            json=self._schedule_payload(code="night"),
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["message"], "Work schedule code NIGHT is already in use.")

    def test_explicit_override_requires_both_times(self) -> None:
        client = self._as("COMPANY_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/work-schedules/{self.schedule.id}",
            json=self._schedule_payload(day_overrides={"MONDAY": {"kind": "EXPLICIT", "start_time": "08:00"}}),
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_equal_base_times_are_rejected(self) -> None:
        client = self._as("COMPANY_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/work-schedules/{self.schedule.id}",
            json=self._schedule_payload(work_end_time="07:00"),
        )

        self.assertEqual(response.status_code, 422)

    def test_payroll_admin_cannot_change_schedules(self) -> None:
        client = self._as("PAYROLL_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/work-schedules/{self.schedule.id}",
            json=self._schedule_payload(),
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json()["error"]["message"],
            "Only Company Admin, HR Admin, or Super Admin can change work schedules.",
        )

    def test_unknown_schedule(self) -> None:
        client = self._as("HR_ADMIN")

        response = client.put(
            f"/api/companies/{self.company_id}/work-schedules/{self.schedule.id + 100}",
            json=self._schedule_payload(),
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["message"], "Work schedule not found for this company.")


if __name__ == "__main__":
    unittest.main()
