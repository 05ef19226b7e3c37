"""
Audit Service - append-only trail of preview workflow actions.

The store writes audit rows inside the same transaction as the change
they describe; this module only builds and reads them.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.schemas import AuditEntry, Caller
from app.logging_config import get_logger, log_with_context

logger = get_logger("audit")

EXAM_PREVIEW_STARTED = "exam_preview_started"
EXAM_PREVIEW_COMPLETED = "exam_preview_completed"
EXAM_FINALIZED = "exam_finalized"
EXAM_QUESTION_MARKING_UPDATED = "exam_question_marking_updated"


class RequestMeta(BaseModel):
    """Where a request came from, copied onto audit entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditEvent(BaseModel):
    """An action to record alongside a store write."""
    actor: Caller
    action: str
    reason: Optional[str] = None
    meta: RequestMeta = RequestMeta()


def extract_changes(before: dict, after: dict) -> Optional[dict]:
    """
    Keep only the keys whose values differ between two snapshots.

    Returns:
        {"before": {...}, "after": {...}} or None when nothing changed
    """
    changes = {"before": {}, "after": {}}
    for key in set(before or {}) | set(after or {}):
        old = (before or {}).get(key)
        new = (after or {}).get(key)
        if json.dumps(old, default=str, sort_keys=True) != json.dumps(new, default=str, sort_keys=True):
            changes["before"][key] = old
            changes["after"][key] = new
    return changes if changes["before"] or changes["after"] else None


def record(session: Session, event: AuditEvent, exam_id: str,
           changes: Optional[dict] = None) -> AuditLog:
    """Add an audit row to the session; the caller owns the commit."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        action=event.action,
        actor_id=event.actor.id,
        actor_role=event.actor.role or "unknown",
        target_type="Exam",
        target_id=exam_id,
        changes=json.dumps(changes, default=str) if changes else None,
        reason=event.reason,
        status="success",
        ip_address=event.meta.ip_address,
        user_agent=event.meta.user_agent,
        created_at=datetime.now(timezone.utc)
    )
    session.add(entry)

    log_with_context(logger, "INFO", "Audit: {} on exam {}".format(event.action, exam_id),
                     context={"exam_id": exam_id, "caller_id": event.actor.id},
                     extra_data={"reason": event.reason})
    return entry


def to_entry(log: AuditLog) -> AuditEntry:
    return AuditEntry(
        id=str(log.id),
        action=log.action,
        actor_id=log.actor_id,
        actor_role=log.actor_role,
        target_type=log.target_type,
        target_id=str(log.target_id),
        changes=log.changes_dict,
        reason=log.reason,
        status=log.status,
        ip_address=log.ip_address,
        user_agent=log.user_agent,
        created_at=log.created_at
    )


def entries_for_exam(session: Session, exam_id: str, limit: int = 100) -> List[AuditEntry]:
    """Most recent audit entries for an exam, newest first."""
    logs = session.query(AuditLog).filter(
        AuditLog.target_type == "Exam",
        AuditLog.target_id == exam_id
    ).order_by(AuditLog.created_at.desc()).limit(limit).all()
    return [to_entry(log) for log in logs]
