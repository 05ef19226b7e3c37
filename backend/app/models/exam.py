"""
Exam model - the document the preview workflow reads and replaces.

Each exam row holds:
- The ordered question list as a JSON document (options + marking rule)
- The preview state and a timestamp for each transition
- A version counter used for compare-and-swap writes
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, Index
from sqlalchemy.orm import relationship
from app.database import Base


class Exam(Base):
    """
    SQLAlchemy model for the exams table.

    Preview state only ever moves forward:
    - DRAFT: Created by the authoring service, fully editable
    - PREVIEW_IN_PROGRESS: A reviewer has opened the preview
    - PREVIEW_COMPLETE: The reviewer signed off on the preview
    - FINALIZED: Locked, questions and marking rules are immutable
    """
    __tablename__ = "exams"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique exam identifier")
    title = Column(Text, nullable=False,
                   doc="Exam title")
    description = Column(Text, nullable=False, default="",
                         doc="Free-form description shown in the preview header")
    created_by = Column(String(64), nullable=False,
                        doc="Caller id of the exam author")
    questions = Column(Text, nullable=False, default="[]",
                       doc="Ordered questions as JSON: [{id, text, options, marking}]")
    preview_state = Column(String(32), nullable=False, default="DRAFT",
                           doc="DRAFT | PREVIEW_IN_PROGRESS | PREVIEW_COMPLETE | FINALIZED")
    approval_status = Column(String(32), nullable=False, default="DRAFT",
                             doc="DRAFT | PENDING (finalized exams await approval)")
    version = Column(Integer, nullable=False, default=1,
                     doc="Incremented on every write; guards compare-and-swap updates")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the exam was created")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the exam was last written")
    preview_started_at = Column(DateTime, nullable=True,
                                doc="When the exam entered PREVIEW_IN_PROGRESS")
    previewed_at = Column(DateTime, nullable=True,
                          doc="When the exam entered PREVIEW_COMPLETE")
    previewed_by = Column(String(64), nullable=True,
                          doc="Caller who completed the preview")
    finalized_at = Column(DateTime, nullable=True,
                          doc="When the exam was finalized")
    finalized_by = Column(String(64), nullable=True,
                          doc="Caller who finalized the exam")

    audit_logs = relationship("AuditLog", back_populates="exam")

    __table_args__ = (
        Index("ix_exams_created_by", "created_by"),
        Index("ix_exams_preview_state", "preview_state"),
    )

    def __repr__(self):
        return f"<Exam(id={self.id}, title='{self.title}', state='{self.preview_state}', v={self.version})>"
