from app.models.exam import Exam
from app.models.audit_log import AuditLog

__all__ = ["Exam", "AuditLog"]
