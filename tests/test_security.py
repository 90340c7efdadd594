from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from dtr_engine.errors import ApiError, AuthorizationError
from dtr_engine.security import (
    COMPANY_ADMIN,
    HR_ADMIN,
    PAYROLL_ADMIN,
    CompanyContext,
    can_manually_modify_dtr,
    create_access_token,
    decode_token,
    has_attendance_sensitive_access,
    require_attendance_read_access,
    require_dtr_modify_access,
    resolve_company_context,
)
from dtr_engine.settings import get_settings


class AccessTokenTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_token_roundtrip_keeps_company_roles(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": "jwt-test-secret"}, clear=False):
            get_settings.cache_clear()
            token, expires_in, _claims = create_access_token(
                sub="42",
                company_roles={3: "hr_admin"},
                full_name="Ana Cruz",
            )
            payload = decode_token(token)

        self.assertEqual(expires_in, 30 * 60)
        self.assertEqual(payload["sub"], "42")
        self.assertEqual(payload["company_roles"], {"3": HR_ADMIN})
        self.assertEqual(payload["typ"], "access")

    def test_token_signed_with_other_secret_is_rejected(self) -> None:
        with patch.dict(os.environ, {"JWT_SECRET": "secret-one"}, clear=False):
            get_settings.cache_clear()
            token, _, _ = create_access_token(sub="42")

        with patch.dict(os.environ, {"JWT_SECRET": "secret-two"}, clear=False):
            get_settings.cache_clear()
            with self.assertRaises(ApiError) as ctx:
                decode_token(token)

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")


class CompanyContextTests(unittest.TestCase):
    def test_company_role_is_resolved_from_claims(self) -> None:
        context = resolve_company_context({"sub": "42", "company_roles": {"3": "company_admin"}}, 3)

        self.assertEqual(context.company_role, COMPANY_ADMIN)
        self.assertEqual(context.user_id, "42")
        self.assertFalse(context.is_super_admin)

    def test_user_without_membership_is_denied(self) -> None:
        with self.assertRaises(AuthorizationError) as ctx:
            resolve_company_context({"sub": "42", "company_roles": {"3": "HR_ADMIN"}}, 4)
        self.assertEqual(ctx.exception.message, "You do not have access to this company.")

    def test_super_admin_reaches_any_company(self) -> None:
        context = resolve_company_context({"sub": "1", "is_super_admin": True}, 99)

        self.assertIsNone(context.company_role)
        self.assertTrue(can_manually_modify_dtr(context))

    def test_payroll_admin_reads_but_cannot_modify(self) -> None:
        context = CompanyContext(company_id=3, user_id="5", company_role=PAYROLL_ADMIN)

        self.assertTrue(has_attendance_sensitive_access(context))
        self.assertFalse(can_manually_modify_dtr(context))
        require_attendance_read_access(context, message="denied")
        with self.assertRaises(AuthorizationError):
            require_dtr_modify_access(context)

    def test_employee_cannot_read_attendance(self) -> None:
        context = CompanyContext(company_id=3, user_id="5", company_role="EMPLOYEE")

        with self.assertRaises(AuthorizationError) as ctx:
            require_attendance_read_access(context, message="You do not have permission to view employee schedules.")
        self.assertEqual(ctx.exception.message, "You do not have permission to view employee schedules.")


if __name__ == "__main__":
    unittest.main()
