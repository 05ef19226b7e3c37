"""
Exam preview API routes - review, marking and finalization of exams.

Provides endpoints for:
- Viewing an exam preview with header totals
- Viewing the marking scheme summary
- Starting / completing the preview
- Finalizing (locking) the exam
- Editing a question's marking rule
- Reading the exam's audit trail

Every endpoint requires a bearer token. Workflow errors raised by the
service are rendered by the PreviewError handler in main.py.
"""

import time
from fastapi import APIRouter, Depends, Query, Request

from app.auth import get_current_caller
from app.database import SessionLocal
from app.schemas import Caller, MarkingRule, MarkingSummary, StateChange
from app.services.audit import RequestMeta
from app.services.exam_store import ExamPreviewStore
from app.services.marking_editor import MarkingEditor
from app.services.preview import PreviewService
from app.logging_config import get_logger, log_with_context

router = APIRouter(prefix="/api/exams")
logger = get_logger("http")


# ── Dependencies ─────────────────────────────────────────────

def get_store() -> ExamPreviewStore:
    """Store bound to the application's session factory (overridden in tests)."""
    return ExamPreviewStore(SessionLocal)


def get_preview_service(store: ExamPreviewStore = Depends(get_store)) -> PreviewService:
    return PreviewService(store)


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _serialize_summary(summary: MarkingSummary) -> dict:
    return {
        "success": True,
        "markingScheme": _dump(summary),
        "maxScore": float(summary.max_score),
        "minScore": float(summary.min_score)
    }


def _serialize_transition(change: StateChange, done: str, already: str) -> dict:
    return {
        "message": done if change.changed else already,
        "changed": change.changed,
        "exam": _dump(change.exam)
    }


# ── Reads ────────────────────────────────────────────────────

@router.get("/{exam_id}/preview")
def get_preview(
    exam_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service)
):
    """Get the formatted preview of all questions in an exam."""
    start_time = time.time()
    preview = service.get_preview(exam_id, caller)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Preview served: {} questions".format(preview.total_questions),
        context={"exam_id": exam_id, "caller_id": caller.id},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {"success": True, "preview": _dump(preview)}


@router.get("/{exam_id}/marking-stats")
def get_marking_stats(
    exam_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service)
):
    """Get the exam's marking scheme summary."""
    return _serialize_summary(service.get_marking_stats(exam_id, caller))


@router.get("/{exam_id}/audit-logs")
def get_audit_logs(
    exam_id: str,
    limit: int = Query(100, ge=1, le=500, description="Max entries to return"),
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service)
):
    """Get the most recent workflow actions on an exam, newest first."""
    entries = service.audit_trail(exam_id, caller, limit=limit)
    return {"data": [_dump(e) for e in entries]}


# ── State transitions ────────────────────────────────────────

@router.post("/{exam_id}/preview/start")
def start_preview(
    exam_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service),
    meta: RequestMeta = Depends(get_request_meta)
):
    """Mark the preview as in progress."""
    change = service.start_preview(exam_id, caller, meta=meta)
    return _serialize_transition(change, "Preview started", "Preview already started")


@router.post("/{exam_id}/preview/complete")
def complete_preview(
    exam_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service),
    meta: RequestMeta = Depends(get_request_meta)
):
    """Mark the preview as complete."""
    change = service.complete_preview(exam_id, caller, meta=meta)
    return _serialize_transition(change, "Preview completed successfully", "Preview already completed")


@router.post("/{exam_id}/finalize")
def finalize_exam(
    exam_id: str,
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service),
    meta: RequestMeta = Depends(get_request_meta)
):
    """Finalize the exam (lock it from further modifications)."""
    change = service.finalize_exam(exam_id, caller, meta=meta)
    return _serialize_transition(
        change,
        "Exam finalized successfully and submitted for approval",
        "Exam already finalized"
    )


# ── Marking edits ────────────────────────────────────────────

@router.api_route("/{exam_id}/questions/{question_index}/marking", methods=["PUT", "PATCH"])
def update_question_marking(
    exam_id: str,
    question_index: int,
    rule: MarkingRule,
    caller: Caller = Depends(get_current_caller),
    service: PreviewService = Depends(get_preview_service),
    meta: RequestMeta = Depends(get_request_meta)
):
    """Replace one question's marking rule and return the new summary."""
    editor = MarkingEditor(service, exam_id, caller, meta=meta)
    editor.begin(question_index)
    outcome = editor.submit(rule)
    if not outcome.ok:
        raise outcome.error

    return {
        "message": "Question marking updated successfully",
        "questionIndex": outcome.question_index,
        **_serialize_summary(outcome.summary)
    }
