"""
Marking Editor - the reviewer-facing edit session for marking rules.

An editor belongs to one reviewer session. It remembers which question
is being edited, forwards the reviewer's candidate rule to the preview
service unmodified, and hands back either the recomputed summary or the
error exactly as the service raised it.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.errors import InvalidArgument, PreviewError
from app.schemas import Caller, MarkingRule, MarkingSummary
from app.services.audit import RequestMeta
from app.services.preview import PreviewService


class EditOutcome(BaseModel):
    """Either ``summary`` or ``error`` is set."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    question_index: int
    summary: Optional[MarkingSummary] = None
    error: Optional[PreviewError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MarkingEditor:

    def __init__(self, service: PreviewService, exam_id: str, caller: Caller,
                 meta: RequestMeta = None):
        self.service = service
        self.exam_id = exam_id
        self.caller = caller
        self.meta = meta
        self.editing_index: Optional[int] = None

    def begin(self, question_index: int) -> None:
        self.editing_index = question_index

    def cancel(self) -> None:
        self.editing_index = None

    def submit(self, rule: MarkingRule) -> EditOutcome:
        """
        Send the candidate rule for the question being edited.

        The edit session ends on success and stays open on failure so
        the reviewer can correct the rule and resubmit.
        """
        if self.editing_index is None:
            raise InvalidArgument("No question is being edited")

        index = self.editing_index
        try:
            summary = self.service.update_marking_rule(
                self.exam_id, index, rule, self.caller, meta=self.meta)
        except PreviewError as e:
            return EditOutcome(question_index=index, error=e)

        self.editing_index = None
        return EditOutcome(question_index=index, summary=summary)
