"""
Preview Service - orchestrates the exam preview and finalization workflow.

Workflow per operation:
1. Load the exam from the store (ExamNotFound if absent)
2. Ask the authorizer whether the caller may act on it (Forbidden if not)
3. Validate arguments / workflow policy
4. Let the store apply the change atomically (it re-checks the lock)
5. Recompute the marking summary from the stored questions

State machine: DRAFT -> PREVIEW_IN_PROGRESS -> PREVIEW_COMPLETE -> FINALIZED,
strictly forward, FINALIZED terminal. Repeating a transition the exam has
already made is a successful no-op, so client retries are harmless.
"""

import time
from typing import List, Optional

from pydantic import BaseModel

from app.auth import Authorizer, OwnerOrAdminAuthorizer
from app.config import REQUIRE_PREVIEW_BEFORE_FINALIZE
from app.errors import ExamLocked, Forbidden, InvalidArgument, InvalidTransition
from app.schemas import (
    MARK_DECIMAL_PLACES, MAX_MARK, AuditEntry, Caller, ExamPreview, ExamRecord, MarkingRule,
    MarkingSummary, OptionPreview, PreviewState, QuestionPreview, StateChange
)
from app.services import audit as audit_service
from app.services.audit import AuditEvent, RequestMeta
from app.services.exam_store import ExamPreviewStore
from app.services.marking import summarize, total_points
from app.logging_config import get_logger, log_with_context

logger = get_logger("preview")
marking_logger = get_logger("marking")


class FinalizationPolicy(BaseModel):
    """Whether finalizing requires a completed preview first."""
    require_preview_complete: bool = REQUIRE_PREVIEW_BEFORE_FINALIZE


def validate_marking_rule(rule: MarkingRule) -> None:
    """
    Raise InvalidArgument unless points and negative mark are finite,
    within 0..MAX_MARK and carry at most MARK_DECIMAL_PLACES decimals.
    """
    for field, value in (("points", rule.points), ("negativeMark", rule.negative_mark)):
        if not value.is_finite():
            raise InvalidArgument("{} must be a finite number".format(field))
        if value < 0:
            raise InvalidArgument("{} must be greater than or equal to 0".format(field))
        if value > MAX_MARK:
            raise InvalidArgument("{} must be at most {}".format(field, MAX_MARK))
        if -value.normalize().as_tuple().exponent > MARK_DECIMAL_PLACES:
            raise InvalidArgument("{} must have at most {} decimal places".format(
                field, MARK_DECIMAL_PLACES))


def build_preview(exam: ExamRecord) -> ExamPreview:
    """Project an exam into the reviewer-facing preview shape."""
    return ExamPreview(
        exam_id=exam.id,
        title=exam.title,
        description=exam.description,
        total_questions=len(exam.questions),
        total_points=total_points(exam.questions),
        questions=[
            QuestionPreview(
                number=number,
                id=q.id,
                text=q.text,
                options=[OptionPreview(letter=o.letter, text=o.text, is_correct=o.is_correct)
                         for o in q.options],
                correct_answer=q.correct_answer,
                points=q.marking.points,
                negative_mark=q.marking.negative_mark,
                partial_credit=q.marking.partial_credit
            )
            for number, q in enumerate(exam.questions, 1)
        ],
        preview_state=exam.preview_state,
        approval_status=exam.approval_status,
        is_preview_complete=exam.is_preview_complete,
        is_finalized=exam.is_finalized
    )


class PreviewService:
    """Stateless between calls; everything durable lives in the store."""

    def __init__(self, store: ExamPreviewStore, authorizer: Authorizer = None,
                 policy: FinalizationPolicy = None):
        self.store = store
        self.authorizer = authorizer or OwnerOrAdminAuthorizer()
        self.policy = policy or FinalizationPolicy()

    def _authorized_exam(self, exam_id: str, caller: Caller) -> ExamRecord:
        exam = self.store.load(exam_id)
        if not self.authorizer.is_authorized(caller, exam):
            log_with_context(logger, "WARNING", "Caller denied access to exam",
                             context={"exam_id": exam_id, "caller_id": caller.id},
                             extra_data={"role": caller.role})
            raise Forbidden("You can only act on your own exams")
        return exam

    # ── Reads ────────────────────────────────────────────────

    def get_preview(self, exam_id: str, caller: Caller) -> ExamPreview:
        """Preview projection plus header totals. Never changes state."""
        exam = self._authorized_exam(exam_id, caller)
        return build_preview(exam)

    def get_marking_stats(self, exam_id: str, caller: Caller) -> MarkingSummary:
        exam = self._authorized_exam(exam_id, caller)
        return summarize(exam.questions)

    def audit_trail(self, exam_id: str, caller: Caller, limit: int = 100) -> List[AuditEntry]:
        self._authorized_exam(exam_id, caller)
        return self.store.audit_trail(exam_id, limit=limit)

    # ── State transitions ────────────────────────────────────

    def _advance(self, exam_id: str, caller: Caller, target: PreviewState, action: str,
                 reason: str, meta: Optional[RequestMeta], allowed_from=None,
                 tolerate_ahead: bool = False) -> StateChange:
        start_time = time.time()
        change = self.store.advance_state(
            exam_id, target,
            allowed_from=allowed_from,
            tolerate_ahead=tolerate_ahead,
            audit=AuditEvent(actor=caller, action=action, reason=reason, meta=meta or RequestMeta())
        )
        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO",
            "{} exam -> {}".format("Advanced" if change.changed else "Already at", target.value),
            context={"exam_id": exam_id, "caller_id": caller.id},
            extra_data={"duration_ms": round(duration_ms, 2), "changed": change.changed})
        return change

    def start_preview(self, exam_id: str, caller: Caller, meta: RequestMeta = None) -> StateChange:
        """DRAFT -> PREVIEW_IN_PROGRESS; a no-op once the exam is at or past it."""
        exam = self._authorized_exam(exam_id, caller)
        if exam.preview_state != PreviewState.DRAFT:
            return StateChange(exam=exam, changed=False)
        return self._advance(exam_id, caller, PreviewState.PREVIEW_IN_PROGRESS,
                             audit_service.EXAM_PREVIEW_STARTED,
                             "Started preview for exam: {}".format(exam.title), meta,
                             tolerate_ahead=True)

    def complete_preview(self, exam_id: str, caller: Caller, meta: RequestMeta = None) -> StateChange:
        """
        DRAFT / PREVIEW_IN_PROGRESS -> PREVIEW_COMPLETE.

        Already complete is a successful no-op; a finalized exam raises
        InvalidTransition. An exam without questions cannot complete preview.
        """
        exam = self._authorized_exam(exam_id, caller)
        if exam.preview_state == PreviewState.PREVIEW_COMPLETE:
            return StateChange(exam=exam, changed=False)
        if exam.is_finalized:
            raise InvalidTransition(exam.preview_state, PreviewState.PREVIEW_COMPLETE,
                                    "Exam is already finalized")
        if not exam.questions:
            raise InvalidArgument("Exam must have at least one question")

        return self._advance(exam_id, caller, PreviewState.PREVIEW_COMPLETE,
                             audit_service.EXAM_PREVIEW_COMPLETED,
                             "Completed preview for exam: {}".format(exam.title), meta)

    def finalize_exam(self, exam_id: str, caller: Caller, meta: RequestMeta = None) -> StateChange:
        """
        Lock the exam. Irreversible.

        Any non-finalized state may finalize unless the policy requires a
        completed preview. Finalizing a finalized exam is a successful no-op.
        """
        exam = self._authorized_exam(exam_id, caller)
        if exam.is_finalized:
            return StateChange(exam=exam, changed=False)
        if not exam.questions:
            raise InvalidArgument("Exam must have at least one question")

        allowed_from = None
        if self.policy.require_preview_complete:
            allowed_from = [PreviewState.PREVIEW_COMPLETE]
            if exam.preview_state != PreviewState.PREVIEW_COMPLETE:
                raise InvalidTransition(exam.preview_state, PreviewState.FINALIZED,
                                        "You must complete preview before finalizing")

        return self._advance(exam_id, caller, PreviewState.FINALIZED,
                             audit_service.EXAM_FINALIZED,
                             "Finalized exam: {}".format(exam.title), meta,
                             allowed_from=allowed_from)

    # ── Marking edits ────────────────────────────────────────

    def update_marking_rule(self, exam_id: str, question_index: int, rule: MarkingRule,
                            caller: Caller, meta: RequestMeta = None) -> MarkingSummary:
        """
        Replace one question's marking rule and return the new summary.

        Raises:
            ExamNotFound, Forbidden, ExamLocked, InvalidArgument,
            QuestionIndexOutOfRange, StoreUnavailable
        """
        exam = self._authorized_exam(exam_id, caller)
        if exam.is_finalized:
            raise ExamLocked("Cannot modify a finalized exam")
        validate_marking_rule(rule)

        updated = self.store.replace_marking_rule(
            exam_id, question_index, rule,
            audit=AuditEvent(
                actor=caller,
                action=audit_service.EXAM_QUESTION_MARKING_UPDATED,
                reason="Updated marking for question {}".format(question_index + 1),
                meta=meta or RequestMeta()
            )
        )
        summary = summarize(updated.questions)

        log_with_context(marking_logger, "INFO",
            "Marking updated for question {}: points={}, negative_mark={}, partial_credit={}".format(
                question_index + 1, rule.points, rule.negative_mark, rule.partial_credit),
            context={"exam_id": exam_id, "caller_id": caller.id, "question_index": question_index},
            extra_data={"total_points": float(summary.total_points)})
        return summary
