from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from fieldledger.models.audit import ActivityLog


def log_activity(
    db: Session,
    *,
    company_id: Optional[int],
    actor_profile_id: Optional[int],
    activity_type: str,
    entity_table: Optional[str] = None,
    entity_id: Optional[int] = None,
    message: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ActivityLog:
    activity = ActivityLog(
        company_id=company_id,
        actor_profile_id=actor_profile_id,
        type=activity_type,
        entity_table=entity_table,
        entity_id=entity_id,
        message=message,
        payload_json=payload,
    )
    db.add(activity)
    db.flush()
    return activity
