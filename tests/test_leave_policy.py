from __future__ import annotations

import unittest

from dtr_engine.errors import NotFoundError, ValidationError
from dtr_engine.models import LeaveType
from dtr_engine.services.leave_policy import (
    decide_leave_charge,
    get_company_leave_type,
    is_dtr_leave_option,
    is_emergency_leave,
    list_company_leave_types,
    resolve_leave_charge,
)
from tests.sqlite_support import create_session_factory, seed_company, seed_leave_type


def _leave_type(id_: int, code: str, name: str, *, company_id: int | None = 1, is_paid: bool = True) -> LeaveType:
    return LeaveType(id=id_, company_id=company_id, code=code, name=name, is_paid=is_paid, is_active=True)


class LeaveChargeDecisionTests(unittest.TestCase):
    def test_emergency_leave_prefers_company_vacation_leave(self) -> None:
        emergency = _leave_type(1, "EL", "Emergency Leave")
        global_vacation = _leave_type(2, "VL", "Vacation Leave", company_id=None)
        company_vacation = _leave_type(3, "VL", "Vacation Leave", company_id=1)

        charge = decide_leave_charge(
            emergency,
            company_id=1,
            available_leave_types=[global_vacation, company_vacation, emergency],
        )

        self.assertEqual(charge.source_leave_type_name, "Emergency Leave")
        self.assertEqual(charge.charge_leave_type_id, 3)
        self.assertEqual(charge.charge_leave_type_name, "Vacation Leave")

    def test_emergency_leave_falls_back_to_global_vacation_leave(self) -> None:
        emergency = _leave_type(1, "EMERGENCY", "Family Emergency")
        global_vacation = _leave_type(2, "vacation-leave", "Annual", company_id=None)

        charge = decide_leave_charge(emergency, company_id=1, available_leave_types=[global_vacation])

        self.assertEqual(charge.charge_leave_type_id, 2)

    def test_emergency_leave_without_vacation_leave_is_rejected(self) -> None:
        emergency = _leave_type(1, "EL", "Emergency Leave")
        with self.assertRaises(ValidationError):
            decide_leave_charge(emergency, company_id=1, available_leave_types=[emergency])

    def test_unpaid_leave_charges_nothing(self) -> None:
        lwop = _leave_type(4, "LWOP", "Leave Without Pay", is_paid=False)

        charge = decide_leave_charge(lwop, company_id=1, available_leave_types=[lwop])

        self.assertIsNone(charge.charge_leave_type_id)
        self.assertIsNone(charge.charge_leave_type_name)

    def test_paid_leave_charges_itself(self) -> None:
        sick = _leave_type(5, "SL", "Sick Leave")

        charge = decide_leave_charge(sick, company_id=1, available_leave_types=[sick])

        self.assertEqual(charge.charge_leave_type_id, 5)


class LeaveTypeMatchingTests(unittest.TestCase):
    def test_emergency_detection_by_code_or_name(self) -> None:
        self.assertTrue(is_emergency_leave(_leave_type(1, "el", "Anything")))
        self.assertTrue(is_emergency_leave(_leave_type(1, "X", "  emergency   leave ")))
        self.assertFalse(is_emergency_leave(_leave_type(1, "VL", "Vacation Leave")))

    def test_dtr_leave_options(self) -> None:
        self.assertTrue(is_dtr_leave_option(_leave_type(1, "SL", "Sick Leave")))
        self.assertTrue(is_dtr_leave_option(_leave_type(1, "CTO", "Comp Time")))
        self.assertTrue(is_dtr_leave_option(_leave_type(1, "X1", "Leave Without Pay")))
        self.assertFalse(is_dtr_leave_option(_leave_type(1, "ML", "Maternity Leave")))


class CompanyLeaveTypeLookupTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = create_session_factory()()
        company = seed_company(self.db)
        other = seed_company(self.db, name="Other Corp")
        self.company_id = company.id
        self.global_vacation = seed_leave_type(self.db, company_id=None, code="VL", name="Vacation Leave", display_order=2)
        self.sick = seed_leave_type(self.db, company_id=company.id, code="SL", name="Sick Leave", display_order=1)
        self.emergency = seed_leave_type(self.db, company_id=company.id, code="EL", name="Emergency Leave", display_order=3)
        self.inactive = seed_leave_type(
            self.db, company_id=company.id, code="OLD", name="Old Leave", is_active=False
        )
        self.foreign = seed_leave_type(self.db, company_id=other.id, code="SL", name="Sick Leave")
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_lists_company_and_global_types_in_display_order(self) -> None:
        leave_types = list_company_leave_types(self.db, company_id=self.company_id)

        self.assertEqual(
            [item.id for item in leave_types],
            [self.sick.id, self.global_vacation.id, self.emergency.id],
        )

    def test_foreign_and_inactive_types_are_not_available(self) -> None:
        with self.assertRaises(NotFoundError):
            get_company_leave_type(self.db, company_id=self.company_id, leave_type_id=self.foreign.id)
        with self.assertRaises(NotFoundError):
            get_company_leave_type(self.db, company_id=self.company_id, leave_type_id=self.inactive.id)

        found = get_company_leave_type(self.db, company_id=self.company_id, leave_type_id=self.global_vacation.id)
        self.assertEqual(found.id, self.global_vacation.id)

    def test_resolve_leave_charge_routes_emergency_to_vacation(self) -> None:
        charge = resolve_leave_charge(self.db, company_id=self.company_id, leave_type_id=self.emergency.id)
        self.assertEqual(charge.charge_leave_type_id, self.global_vacation.id)

    def test_resolve_leave_charge_for_unknown_type(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            resolve_leave_charge(self.db, company_id=self.company_id, leave_type_id=9999)
        self.assertEqual(ctx.exception.message, "Selected leave type is no longer available.")


if __name__ == "__main__":
    unittest.main()
