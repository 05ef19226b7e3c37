"""
Exam Preview Store - sole writer of an exam's preview state and marking rules.

Each exam is one row whose question list is a JSON document that is read
and replaced as a whole. Every write runs in its own transaction:

1. Lock the row (SELECT ... FOR UPDATE where the backend supports it)
2. Check the lock / transition rules against the freshly read state
3. Compare-and-swap: UPDATE ... WHERE version = <read version>
4. Append the audit entry in the same transaction

A lost compare-and-swap re-reads and re-checks, so a marking write racing
a finalization either lands before the lock or fails with ExamLocked.
Database timeouts and dropped connections surface as StoreUnavailable;
they are never retried here.
"""

import json
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from app.errors import (
    ExamLocked, ExamNotFound, InvalidTransition, QuestionIndexOutOfRange, StoreUnavailable
)
from app.models.exam import Exam
from app.schemas import (
    ApprovalStatus, AuditEntry, ExamRecord, MarkingRule, PreviewState, Question, StateChange
)
from app.services import audit as audit_service
from app.services.audit import AuditEvent
from app.logging_config import get_logger, log_with_context

logger = get_logger("db")

# Max compare-and-swap rounds before giving up on a contended exam
CAS_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def dump_questions(questions: Sequence[Question]) -> str:
    """Serialize questions to the stored JSON document (Decimals as strings)."""
    return json.dumps([q.model_dump(by_alias=True) for q in questions], default=str)


def load_questions(document) -> List[Question]:
    """Parse the stored JSON document; absent marking rules take defaults."""
    if isinstance(document, str):
        document = json.loads(document) if document else []
    return [Question.model_validate(item) for item in (document or [])]


class ExamPreviewStore:
    """Transactional access to exams, keyed by exam id."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self):
        session: Session = self._session_factory()
        try:
            with session.begin():
                yield session
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            log_with_context(logger, "ERROR", "Exam store unavailable: {}".format(e.__class__.__name__),
                             extra_data={"error": str(e)})
            raise StoreUnavailable("Exam store is temporarily unavailable") from e
        finally:
            session.close()

    def _get(self, session: Session, exam_id: str, for_update: bool = False) -> Exam:
        query = session.query(Exam).filter(Exam.id == exam_id)
        if for_update:
            query = query.with_for_update()
        exam = query.first()
        if exam is None:
            raise ExamNotFound(exam_id)
        return exam

    def _to_record(self, row: Exam) -> ExamRecord:
        return ExamRecord(
            id=str(row.id),
            title=row.title,
            description=row.description or "",
            created_by=row.created_by,
            preview_state=PreviewState(row.preview_state),
            approval_status=ApprovalStatus(row.approval_status),
            questions=load_questions(row.questions),
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
            preview_started_at=row.preview_started_at,
            previewed_at=row.previewed_at,
            previewed_by=row.previewed_by,
            finalized_at=row.finalized_at,
            finalized_by=row.finalized_by
        )

    # ── Reads ────────────────────────────────────────────────

    def load(self, exam_id: str) -> ExamRecord:
        """Read the current exam. Raises ExamNotFound."""
        with self._transaction() as session:
            return self._to_record(self._get(session, exam_id))

    def audit_trail(self, exam_id: str, limit: int = 100) -> List[AuditEntry]:
        """Audit entries for an exam, newest first. Raises ExamNotFound."""
        with self._transaction() as session:
            self._get(session, exam_id)
            return audit_service.entries_for_exam(session, exam_id, limit=limit)

    # ── Writes ───────────────────────────────────────────────

    def create(self, title: str, questions: Iterable, created_by: str,
               description: str = "", exam_id: str = None) -> ExamRecord:
        """
        Insert a new exam in DRAFT state.

        Used by the authoring side and the seeding script; questions may be
        Question objects or plain dicts in the stored document shape.
        """
        parsed = [q if isinstance(q, Question) else Question.model_validate(q) for q in questions]
        now = _now()
        with self._transaction() as session:
            row = Exam(
                id=exam_id or str(uuid.uuid4()),
                title=title,
                description=description or "",
                created_by=created_by,
                questions=dump_questions(parsed),
                preview_state=PreviewState.DRAFT.value,
                approval_status=ApprovalStatus.DRAFT.value,
                version=1,
                created_at=now,
                updated_at=now
            )
            session.add(row)
            session.flush()

            log_with_context(logger, "INFO", "Created exam: {}".format(title),
                             context={"exam_id": str(row.id), "caller_id": created_by},
                             extra_data={"questions": len(parsed)})
            return self._to_record(row)

    def replace_marking_rule(self, exam_id: str, question_index: int, rule: MarkingRule,
                             audit: Optional[AuditEvent] = None) -> ExamRecord:
        """
        Replace one question's marking rule.

        Raises:
            ExamNotFound, QuestionIndexOutOfRange, ExamLocked, StoreUnavailable
        """
        start_time = time.time()

        for attempt in range(1, CAS_ATTEMPTS + 1):
            with self._transaction() as session:
                row = self._get(session, exam_id, for_update=True)
                if row.preview_state == PreviewState.FINALIZED.value:
                    raise ExamLocked("Cannot modify a finalized exam")

                questions = load_questions(row.questions)
                if question_index < 0 or question_index >= len(questions):
                    raise QuestionIndexOutOfRange(question_index, len(questions))

                before = questions[question_index].marking
                questions[question_index] = questions[question_index].model_copy(update={"marking": rule})

                result = session.execute(
                    update(Exam)
                    .where(
                        Exam.id == exam_id,
                        Exam.version == row.version,
                        Exam.preview_state != PreviewState.FINALIZED.value
                    )
                    .values(questions=dump_questions(questions), version=row.version + 1, updated_at=_now())
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    if audit is not None:
                        audit_service.record(
                            session, audit, exam_id,
                            changes=audit_service.extract_changes(
                                before.model_dump(by_alias=True), rule.model_dump(by_alias=True)))
                    session.refresh(row)
                    record = self._to_record(row)

                    duration_ms = (time.time() - start_time) * 1000
                    log_with_context(logger, "INFO",
                        "Marking rule replaced for question {} (version {})".format(question_index, record.version),
                        context={"exam_id": exam_id, "question_index": question_index},
                        extra_data={"duration_ms": round(duration_ms, 2), "attempt": attempt})
                    return record

            log_with_context(logger, "WARNING", "Lost compare-and-swap on exam, re-reading",
                             context={"exam_id": exam_id}, extra_data={"attempt": attempt})

        raise StoreUnavailable("Exam {} is being modified concurrently; try again".format(exam_id))

    def advance_state(self, exam_id: str, target: PreviewState,
                      allowed_from: Optional[Iterable[PreviewState]] = None,
                      tolerate_ahead: bool = False,
                      audit: Optional[AuditEvent] = None) -> StateChange:
        """
        Move an exam forward to ``target``.

        Reaching the state the exam is already in is a no-op
        (``changed=False``), as is being past it when ``tolerate_ahead`` is
        set. Otherwise moving backward, or from a state outside
        ``allowed_from``, raises InvalidTransition.
        """
        allowed = set(allowed_from) if allowed_from is not None else None

        for attempt in range(1, CAS_ATTEMPTS + 1):
            with self._transaction() as session:
                row = self._get(session, exam_id, for_update=True)
                current = PreviewState(row.preview_state)

                if current == target or (tolerate_ahead and target.precedes(current)):
                    return StateChange(exam=self._to_record(row), changed=False)
                if target.precedes(current):
                    raise InvalidTransition(current, target)
                if allowed is not None and current not in allowed:
                    raise InvalidTransition(
                        current, target,
                        "Exam must be in {} to move to {}".format(
                            " or ".join(sorted(s.value for s in allowed)), target.value))

                now = _now()
                actor_id = audit.actor.id if audit is not None else None
                values = {"preview_state": target.value, "version": row.version + 1, "updated_at": now}
                if target == PreviewState.PREVIEW_IN_PROGRESS:
                    values["preview_started_at"] = now
                elif target == PreviewState.PREVIEW_COMPLETE:
                    values.update(previewed_at=now, previewed_by=actor_id)
                elif target == PreviewState.FINALIZED:
                    values.update(finalized_at=now, finalized_by=actor_id,
                                  approval_status=ApprovalStatus.PENDING.value)

                result = session.execute(
                    update(Exam)
                    .where(Exam.id == exam_id, Exam.version == row.version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    if audit is not None:
                        audit_service.record(
                            session, audit, exam_id,
                            changes={"before": {"previewState": current.value},
                                     "after": {"previewState": target.value}})
                    session.refresh(row)

                    log_with_context(logger, "INFO",
                        "Exam state advanced: {} -> {}".format(current.value, target.value),
                        context={"exam_id": exam_id, "caller_id": actor_id},
                        extra_data={"attempt": attempt})
                    return StateChange(exam=self._to_record(row), changed=True)

            log_with_context(logger, "WARNING", "Lost compare-and-swap on exam, re-reading",
                             context={"exam_id": exam_id}, extra_data={"attempt": attempt})

        raise StoreUnavailable("Exam {} is being modified concurrently; try again".format(exam_id))
