from __future__ import annotations

import unittest
from datetime import date, datetime, time

from dtr_engine.errors import NotFoundError, ValidationError
from dtr_engine.models import WorkSchedule
from dtr_engine.services.schedule_resolver import (
    Explicit,
    NotWorking,
    ScheduleConfigurationError,
    UseBase,
    describe_employee_schedule,
    parse_day_override,
    parse_day_overrides,
    resolve_schedule_for_date,
    serialize_day_overrides,
)
from tests.sqlite_support import create_session_factory, seed_company, seed_employee, seed_schedule

# 2026-03-09 is a Monday.
MONDAY = date(2026, 3, 9)
SATURDAY = date(2026, 3, 14)
SUNDAY = date(2026, 3, 15)


def _schedule(day_overrides=None, *, start: time = time(8, 0), end: time = time(17, 0)) -> WorkSchedule:  # type: ignore[no-untyped-def]
    return WorkSchedule(
        code="REG",
        name="Regular",
        work_start_time=start,
        work_end_time=end,
        break_duration_mins=60,
        grace_period_mins=0,
        day_overrides=day_overrides,
    )


class DayOverrideParsingTests(unittest.TestCase):
    def test_missing_slot_uses_base(self) -> None:
        self.assertEqual(parse_day_override(None), UseBase())

    def test_tagged_variants(self) -> None:
        self.assertEqual(parse_day_override({"kind": "NOT_WORKING"}), NotWorking())
        self.assertEqual(parse_day_override({"kind": "use_base"}), UseBase())
        self.assertEqual(
            parse_day_override({"kind": "EXPLICIT", "start_time": "09:00", "end_time": "13:00"}),
            Explicit(start=time(9, 0), end=time(13, 0)),
        )

    def test_legacy_shape(self) -> None:
        self.assertEqual(parse_day_override({"isWorkingDay": False}), NotWorking())
        self.assertEqual(
            parse_day_override({"isWorkingDay": True, "timeIn": "07:00", "timeOut": "16:00"}),
            Explicit(start=time(7, 0), end=time(16, 0)),
        )
        self.assertEqual(parse_day_override({"isWorkingDay": True}), UseBase())

    def test_malformed_explicit_time_raises(self) -> None:
        with self.assertRaises(ScheduleConfigurationError):
            parse_day_override({"kind": "EXPLICIT", "start_time": "9am", "end_time": "13:00"})
        with self.assertRaises(ScheduleConfigurationError):
            parse_day_override({"kind": "EXPLICIT", "start_time": "09:00"})
        with self.assertRaises(ScheduleConfigurationError):
            parse_day_override({"kind": "SOMETIMES"})

    def test_serialize_keeps_all_weekdays(self) -> None:
        overrides = parse_day_overrides({"SUNDAY": {"kind": "NOT_WORKING"}})
        payload = serialize_day_overrides(overrides)

        self.assertEqual(len(payload), 7)
        self.assertEqual(payload["SUNDAY"], {"kind": "NOT_WORKING"})
        self.assertEqual(payload["MONDAY"], {"kind": "USE_BASE"})


class ResolveScheduleTests(unittest.TestCase):
    def test_no_schedule_resolves_to_none(self) -> None:
        self.assertIsNone(resolve_schedule_for_date(MONDAY, None))

    def test_base_hours(self) -> None:
        window = resolve_schedule_for_date(MONDAY, _schedule())

        assert window is not None
        self.assertEqual(window.scheduled_in, datetime(2026, 3, 9, 8, 0))
        self.assertEqual(window.scheduled_out, datetime(2026, 3, 9, 17, 0))

    def test_not_working_day(self) -> None:
        schedule = _schedule({"SUNDAY": {"kind": "NOT_WORKING"}})
        self.assertIsNone(resolve_schedule_for_date(SUNDAY, schedule))
        self.assertIsNotNone(resolve_schedule_for_date(MONDAY, schedule))

    def test_explicit_override_replaces_base(self) -> None:
        schedule = _schedule({"SATURDAY": {"kind": "EXPLICIT", "start_time": "09:00", "end_time": "13:00"}})
        window = resolve_schedule_for_date(SATURDAY, schedule)

        assert window is not None
        self.assertEqual(window.scheduled_in, datetime(2026, 3, 14, 9, 0))
        self.assertEqual(window.scheduled_out, datetime(2026, 3, 14, 13, 0))

    def test_overnight_end_rolls_to_next_day(self) -> None:
        window = resolve_schedule_for_date(MONDAY, _schedule(start=time(22, 0), end=time(6, 0)))

        assert window is not None
        self.assertEqual(window.scheduled_in, datetime(2026, 3, 9, 22, 0))
        self.assertEqual(window.scheduled_out, datetime(2026, 3, 10, 6, 0))


class DescribeEmployeeScheduleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = create_session_factory()
        self.db = self.session_factory()
        company = seed_company(self.db)
        schedule = seed_schedule(
            self.db,
            company_id=company.id,
            day_overrides={"SUNDAY": {"kind": "NOT_WORKING"}},
        )
        self.company_id = company.id
        self.employee = seed_employee(self.db, company_id=company.id, work_schedule_id=schedule.id)
        self.unscheduled = seed_employee(self.db, company_id=company.id, employee_number="EMP-0002")
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_working_day_summary(self) -> None:
        summary = describe_employee_schedule(
            self.db,
            company_id=self.company_id,
            employee_id=self.employee.id,
            attendance_date=MONDAY,
        )

        self.assertEqual(summary.name, "Regular Day Shift")
        self.assertEqual(summary.time_in, "08:00")
        self.assertEqual(summary.time_out, "17:00")

    def test_rest_day(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            describe_employee_schedule(
                self.db,
                company_id=self.company_id,
                employee_id=self.employee.id,
                attendance_date=SUNDAY,
            )
        self.assertEqual(ctx.exception.message, "Selected day is configured as rest day.")

    def test_no_schedule_assigned(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            describe_employee_schedule(
                self.db,
                company_id=self.company_id,
                employee_id=self.unscheduled.id,
                attendance_date=MONDAY,
            )
        self.assertEqual(ctx.exception.message, "No work schedule assigned.")

    def test_employee_outside_company(self) -> None:
        with self.assertRaises(NotFoundError):
            describe_employee_schedule(
                self.db,
                company_id=self.company_id + 100,
                employee_id=self.employee.id,
                attendance_date=MONDAY,
            )


if __name__ == "__main__":
    unittest.main()
