"""
Pydantic schemas shared by the store, the services and the API routes.

Monetary-style quantities (points, negative marks) are Decimals end to end
so repeated recomputation never drifts; they are rendered as JSON numbers.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Decimal in Python, number in JSON
Amount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

# Largest points / negative mark a single question may carry
MAX_MARK = Decimal("1000")
MARK_DECIMAL_PLACES = 2


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreviewState(str, Enum):
    """Exam preview lifecycle. Order of declaration is the only allowed direction."""
    DRAFT = "DRAFT"
    PREVIEW_IN_PROGRESS = "PREVIEW_IN_PROGRESS"
    PREVIEW_COMPLETE = "PREVIEW_COMPLETE"
    FINALIZED = "FINALIZED"

    @property
    def rank(self) -> int:
        return list(PreviewState).index(self)

    def precedes(self, other: "PreviewState") -> bool:
        return self.rank < other.rank


class ApprovalStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"


class Caller(BaseModel):
    """Authenticated principal extracted from the bearer credential."""
    model_config = ConfigDict(frozen=True)

    id: str
    role: str = "teacher"
    name: Optional[str] = None
    email: Optional[str] = None


class MarkingRule(CamelModel):
    """Per-question scoring configuration."""
    points: Amount = Field(Decimal("1"), le=MAX_MARK, decimal_places=MARK_DECIMAL_PLACES,
                           description="Points awarded for a correct response")
    negative_mark: Amount = Field(Decimal("0"), le=MAX_MARK, decimal_places=MARK_DECIMAL_PLACES,
                                  description="Points subtracted on an incorrect response")
    partial_credit: bool = Field(False, description="Whether partially correct responses earn credit")


class Option(CamelModel):
    letter: str
    text: str
    is_correct: bool = False


class Question(CamelModel):
    id: str
    text: str
    options: List[Option] = Field(default_factory=list)
    marking: MarkingRule = Field(default_factory=MarkingRule)

    @property
    def correct_answer(self) -> Optional[str]:
        """Letter of the first option flagged correct, if any."""
        for option in self.options:
            if option.is_correct:
                return option.letter
        return None


class QuestionMarking(CamelModel):
    """One row of the marking summary breakdown."""
    number: int
    points: Amount
    negative_mark: Amount
    partial_credit: bool


class MarkingSummary(CamelModel):
    """Aggregate marking statistics derived from an exam's questions."""
    model_config = ConfigDict(frozen=True)

    total_questions: int
    total_points: Amount
    average_points: Amount
    total_negative_mark: Amount
    questions_with_partial_credit: int
    max_score: Amount
    min_score: Amount
    questions: List[QuestionMarking]


class ExamRecord(CamelModel):
    """Snapshot of a stored exam as read from the store."""
    id: str
    title: str
    description: str = ""
    created_by: str
    preview_state: PreviewState
    approval_status: ApprovalStatus
    questions: List[Question]
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    preview_started_at: Optional[datetime] = None
    previewed_at: Optional[datetime] = None
    previewed_by: Optional[str] = None
    finalized_at: Optional[datetime] = None
    finalized_by: Optional[str] = None

    @property
    def is_finalized(self) -> bool:
        return self.preview_state == PreviewState.FINALIZED

    @property
    def is_preview_complete(self) -> bool:
        return not self.preview_state.precedes(PreviewState.PREVIEW_COMPLETE)


class OptionPreview(CamelModel):
    letter: str
    text: str
    is_correct: bool


class QuestionPreview(CamelModel):
    number: int
    id: str
    text: str
    options: List[OptionPreview]
    correct_answer: Optional[str] = None
    points: Amount
    negative_mark: Amount
    partial_credit: bool


class ExamPreview(CamelModel):
    """Reviewer-facing projection of an exam with its header totals."""
    exam_id: str
    title: str
    description: str
    total_questions: int
    total_points: Amount
    questions: List[QuestionPreview]
    preview_state: PreviewState
    approval_status: ApprovalStatus
    is_preview_complete: bool
    is_finalized: bool


class StateChange(BaseModel):
    """Result of a state advance: the exam after the call and whether it moved."""
    exam: ExamRecord
    changed: bool


class AuditEntry(CamelModel):
    id: str
    action: str
    actor_id: str
    actor_role: str
    target_type: str
    target_id: str
    changes: Optional[dict] = None
    reason: Optional[str] = None
    status: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
