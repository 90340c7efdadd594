from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from dtr_engine.errors import ApiError, AuthorizationError
from dtr_engine.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

COMPANY_ADMIN = "COMPANY_ADMIN"
HR_ADMIN = "HR_ADMIN"
PAYROLL_ADMIN = "PAYROLL_ADMIN"
EMPLOYEE = "EMPLOYEE"

ATTENDANCE_SENSITIVE_ROLES = frozenset({COMPANY_ADMIN, HR_ADMIN, PAYROLL_ADMIN})
DTR_MODIFY_ROLES = frozenset({COMPANY_ADMIN, HR_ADMIN})

DTR_MODIFY_DENIED_MESSAGE = "Only Company Admin, HR Admin, or Super Admin can manually modify DTR records."


@dataclass(frozen=True)
class CompanyContext:
    company_id: int
    user_id: str
    company_role: str | None
    is_super_admin: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_company_roles(raw: Any) -> dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): str(value).strip().upper() for key, value in raw.items() if value}


def create_access_token(
    *,
    sub: str,
    company_roles: Mapping[int | str, str] | None = None,
    is_super_admin: bool = False,
    full_name: str | None = None,
) -> tuple[str, int, dict[str, Any]]:
    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": sub,
        "full_name": full_name,
        "company_roles": _normalize_company_roles(company_roles),
        "is_super_admin": is_super_admin,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")
    return payload


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)
    request.state.actor_id = str(payload["sub"])
    return payload


def resolve_company_context(claims: Mapping[str, Any], company_id: int) -> CompanyContext:
    is_super_admin = bool(claims.get("is_super_admin"))
    company_role = _normalize_company_roles(claims.get("company_roles")).get(str(company_id))
    if company_role is None and not is_super_admin:
        raise AuthorizationError("You do not have access to this company.")
    return CompanyContext(
        company_id=company_id,
        user_id=str(claims.get("sub") or ""),
        company_role=company_role,
        is_super_admin=is_super_admin,
    )


def has_attendance_sensitive_access(context: CompanyContext) -> bool:
    return context.is_super_admin or context.company_role in ATTENDANCE_SENSITIVE_ROLES


def can_manually_modify_dtr(context: CompanyContext) -> bool:
    return context.is_super_admin or context.company_role in DTR_MODIFY_ROLES


def require_dtr_modify_access(context: CompanyContext) -> None:
    if not has_attendance_sensitive_access(context) or not can_manually_modify_dtr(context):
        raise AuthorizationError(DTR_MODIFY_DENIED_MESSAGE)


def require_attendance_read_access(context: CompanyContext, *, message: str) -> None:
    if not has_attendance_sensitive_access(context):
        raise AuthorizationError(message)
