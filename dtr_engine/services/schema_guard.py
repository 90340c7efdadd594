from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


# Columns the DTR write path depends on; the last three come from migration 0002.
REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "daily_time_records": {
        "id",
        "employee_id",
        "attendance_date",
        "attendance_status",
        "day_fraction",
        "leave_type_id",
        "active_leave_usage_transaction_id",
    },
    "leave_balances": {"id", "current_balance", "pending_requests", "credits_used", "available_balance"},
    "leave_balance_transactions": {"id", "transaction_type", "reference_type", "reference_id"},
    "work_schedules": {"id", "day_overrides"},
    "alembic_version": {"version_num"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "dtr_day_fraction": {"FULL", "HALF"},
    "leave_balance_transaction_type": {"USAGE", "ADJUSTMENT"},
}


def _collect_enum_labels(engine: Engine, warnings: list[str]) -> dict[str, set[str]]:
    inspector = inspect(engine)
    get_enums = getattr(inspector, "get_enums", None)
    if get_enums is None:
        warnings.append(f"ENUM_INSPECTION_UNSUPPORTED:{engine.dialect.name}")
        return {}
    try:
        enums = get_enums() or []
    except SQLAlchemyError as exc:
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return {}
    return {
        str(item.get("name")): {str(label) for label in item.get("labels") or []}
        for item in enums
        if item.get("name")
    }


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        if table_name not in existing_tables:
            issues.append(f"MISSING_TABLE:{table_name}")
            continue
        column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        missing_columns = sorted(required_columns - column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    enum_labels = _collect_enum_labels(engine, warnings)
    if enum_labels:
        for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
            if enum_name not in enum_labels:
                warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
                continue
            missing_values = sorted(required_values - enum_labels[enum_name])
            if missing_values:
                issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    if "alembic_version" in existing_tables:
        with engine.connect() as connection:
            version = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
        if not str(version or "").strip():
            issues.append("ALEMBIC_VERSION_EMPTY")

    return SchemaGuardResult(
        ok=not issues,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
