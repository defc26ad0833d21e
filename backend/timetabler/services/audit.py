from __future__ import annotations

from sqlalchemy.orm import Session

from timetabler.core.security import Caller
from timetabler.models.activity_log import ActivityLog


def log_activity(
    db: Session,
    *,
    caller: Caller | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> None:
    record = ActivityLog(
        user_id=caller.id if caller is not None else None,
        role=caller.role.value if caller is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
