from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy.orm import Session

from dtr_engine.models import AuditActorType, AuditLog

logger = logging.getLogger("dtr_engine.audit")


@dataclass(frozen=True)
class FieldChange:
    field_name: str
    old_value: Any
    new_value: Any


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    entry = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        success=success,
        details=details or {},
    )
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_id": actor_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
        },
    )


def log_record_change(
    db: Session,
    *,
    table_name: str,
    record_id: int | str,
    action: str,
    actor_id: str,
    reason: str,
    changes: Sequence[FieldChange],
    request_id: str | None = None,
) -> None:
    """Audit sink for field-level change-sets on a single row."""
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=actor_id,
        action=action,
        success=True,
        entity_type=table_name,
        entity_id=str(record_id),
        details={
            "reason": reason,
            "changes": [
                {"field_name": item.field_name, "old_value": item.old_value, "new_value": item.new_value}
                for item in changes
            ],
        },
        request_id=request_id,
    )
