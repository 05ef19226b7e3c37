"""
AuditLog model - append-only record of workflow actions on exams.

Entries are written in the same transaction as the change they describe,
so a rolled-back transition never leaves an audit entry behind.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Index
from sqlalchemy.orm import relationship
from app.database import Base


class AuditLog(Base):
    """
    SQLAlchemy model for the audit_logs table.

    Actions recorded by the preview workflow:
    exam_preview_started, exam_preview_completed, exam_finalized,
    exam_question_marking_updated.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique audit entry identifier")
    action = Column(String(64), nullable=False,
                    doc="What was done")
    actor_id = Column(String(64), nullable=False,
                      doc="Caller who performed the action")
    actor_role = Column(String(32), nullable=False, default="unknown",
                        doc="Role of the caller at the time of the action")
    target_type = Column(String(32), nullable=False, default="Exam",
                         doc="Kind of entity acted upon")
    target_id = Column(String(36), ForeignKey("exams.id"), nullable=False,
                       doc="Exam acted upon")
    changes = Column(Text, nullable=True,
                     doc="JSON {before, after} for modifications")
    reason = Column(Text, nullable=True,
                    doc="Human-readable description")
    status = Column(String(16), nullable=False, default="success",
                    doc="success | failed | unauthorized")
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the action happened")

    exam = relationship("Exam", back_populates="audit_logs")

    __table_args__ = (
        Index("ix_audit_logs_target", "target_type", "target_id", "created_at"),
        Index("ix_audit_logs_actor", "actor_id", "created_at"),
    )

    @property
    def changes_dict(self):
        """Parse changes JSON string to dict."""
        if isinstance(self.changes, dict):
            return self.changes
        try:
            return json.loads(self.changes) if self.changes else None
        except (json.JSONDecodeError, TypeError):
            return None

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', target={self.target_id}, actor={self.actor_id})>"
