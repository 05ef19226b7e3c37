"""
Marking Service - derives the marking summary of an exam.

Implements the summary formula over the per-question marking rules:
1. total_points = sum of points
2. average_points = total_points / question count, two decimal places (0 when empty)
3. total_negative_mark = sum of negative marks
4. questions_with_partial_credit = count of rules with partial credit
5. max_score = total_points, min_score = -total_negative_mark (0 if no negative marking)

All arithmetic is done on Decimals so recomputing the same questions
always yields the same summary. Nothing here touches the database.
"""

from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Sequence

from app.schemas import MarkingSummary, Question, QuestionMarking

ZERO = Decimal("0")
AVERAGE_QUANTUM = Decimal("0.01")


def average(total: Decimal, count: int) -> Decimal:
    """Average rounded half-up to two places; an empty exam averages 0."""
    if count == 0:
        return ZERO.quantize(AVERAGE_QUANTUM)
    with localcontext() as ctx:
        # quantize needs every integer digit plus two decimals in precision
        ctx.prec = max(ctx.prec, total.adjusted() + 4)
        return (total / Decimal(count)).quantize(AVERAGE_QUANTUM, rounding=ROUND_HALF_UP)


def summarize(questions: Sequence[Question]) -> MarkingSummary:
    """
    Compute the marking summary for an ordered list of questions.

    Args:
        questions: The exam's questions, in display order

    Returns:
        MarkingSummary whose ``questions[i]`` describes ``questions[i]``
    """
    total_points = ZERO
    total_negative_mark = ZERO
    partial_credit_count = 0
    breakdown = []

    for number, question in enumerate(questions, 1):
        rule = question.marking
        total_points += rule.points
        total_negative_mark += rule.negative_mark
        if rule.partial_credit:
            partial_credit_count += 1
        breakdown.append(QuestionMarking(
            number=number,
            points=rule.points,
            negative_mark=rule.negative_mark,
            partial_credit=rule.partial_credit
        ))

    has_negative_marking = any(q.marking.negative_mark > ZERO for q in questions)

    return MarkingSummary(
        total_questions=len(breakdown),
        total_points=total_points,
        average_points=average(total_points, len(breakdown)),
        total_negative_mark=total_negative_mark,
        questions_with_partial_credit=partial_credit_count,
        max_score=total_points,
        min_score=-total_negative_mark if has_negative_marking else ZERO,
        questions=breakdown
    )


def total_points(questions: Sequence[Question]) -> Decimal:
    """Sum of points across questions (header total in the preview)."""
    return sum((q.marking.points for q in questions), ZERO)
