"""
Unit tests for the marking summary calculator.
"""

import random
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.schemas import MAX_MARK, MarkingRule, Question
from app.services.marking import average, summarize, total_points


def _question(qid, points, negative_mark="0", partial_credit=False):
    return Question(
        id=qid,
        text="Question {}".format(qid),
        marking=MarkingRule(points=Decimal(points), negative_mark=Decimal(negative_mark),
                            partial_credit=partial_credit),
    )


class TestSummarize:
    """Tests for summarize()."""

    def test_empty_exam_is_all_zero(self):
        """An empty question list yields zero counts and a zero average."""
        summary = summarize([])

        assert summary.total_questions == 0
        assert summary.total_points == 0
        assert summary.average_points == 0
        assert summary.questions_with_partial_credit == 0
        assert summary.total_negative_mark == 0
        assert summary.min_score == 0
        assert summary.max_score == 0
        assert summary.questions == []

    def test_scenario_three_questions(self):
        """Points [1, 1, 2] and negative marks [0, 0.25, 0]."""
        questions = [
            _question("q1", "1"),
            _question("q2", "1", negative_mark="0.25"),
            _question("q3", "2"),
        ]

        summary = summarize(questions)

        assert summary.total_points == Decimal("4")
        assert summary.average_points == Decimal("1.33")
        assert summary.total_negative_mark == Decimal("0.25")
        assert summary.questions_with_partial_credit == 0
        assert summary.max_score == Decimal("4")
        assert summary.min_score == Decimal("-0.25")

    def test_total_points_is_sum_of_points(self):
        """totalPoints equals the sum of per-question points for varied inputs."""
        rng = random.Random(1234)
        for size in range(0, 25):
            points = [Decimal(rng.randint(0, 400)) / Decimal(4) for _ in range(size)]
            questions = [_question("q{}".format(i), str(p)) for i, p in enumerate(points)]

            assert summarize(questions).total_points == sum(points, Decimal("0"))

    def test_breakdown_preserves_order(self):
        """summary.questions[i] describes input question i."""
        questions = [
            _question("a", "3", partial_credit=True),
            _question("b", "0.5", negative_mark="0.1"),
            _question("c", "1"),
        ]

        breakdown = summarize(questions).questions

        assert [row.number for row in breakdown] == [1, 2, 3]
        assert [row.points for row in breakdown] == [Decimal("3"), Decimal("0.5"), Decimal("1")]
        assert [row.partial_credit for row in breakdown] == [True, False, False]
        assert breakdown[1].negative_mark == Decimal("0.1")

    def test_recompute_is_identical(self):
        """Summarizing the same questions twice gives identical output."""
        questions = [_question("q{}".format(i), "0.1", negative_mark="0.3") for i in range(30)]

        first = summarize(questions)
        second = summarize(questions)

        assert first == second
        assert first.model_dump_json() == second.model_dump_json()

    def test_no_float_drift(self):
        """Ten questions of 0.1 points total exactly 1."""
        questions = [_question("q{}".format(i), "0.1") for i in range(10)]

        assert summarize(questions).total_points == Decimal("1.0")

    def test_partial_credit_count(self):
        questions = [
            _question("q1", "1", partial_credit=True),
            _question("q2", "1", partial_credit=True),
            _question("q3", "1"),
        ]

        assert summarize(questions).questions_with_partial_credit == 2

    def test_min_score_zero_without_negative_marking(self):
        summary = summarize([_question("q1", "2"), _question("q2", "3")])

        assert summary.min_score == 0
        assert summary.max_score == Decimal("5")

    def test_json_renders_numbers(self):
        """Decimals serialize as JSON numbers with camelCase keys."""
        data = summarize([_question("q1", "1"), _question("q2", "2", negative_mark="0.5")]).model_dump(
            mode="json", by_alias=True)

        assert data["totalPoints"] == 3.0
        assert data["averagePoints"] == 1.5
        assert data["totalNegativeMark"] == 0.5
        assert data["questions"][1]["negativeMark"] == 0.5


class TestHelpers:
    """Tests for average() and total_points()."""

    def test_average_rounds_half_up(self):
        assert average(Decimal("5"), 8) == Decimal("0.63")

    def test_average_of_nothing_is_zero(self):
        assert average(Decimal("0"), 0) == 0

    def test_total_points(self):
        assert total_points([_question("q1", "1.5"), _question("q2", "2")]) == Decimal("3.5")

    def test_average_of_huge_total(self):
        """Totals wider than the default 28-digit context still round."""
        assert average(Decimal("1e30"), 3) == Decimal("3" * 30 + ".33")

    def test_summary_of_out_of_range_rules(self):
        """Rules that bypassed validation still summarize."""
        oversized = MarkingRule.model_construct(points=Decimal("1e30"), negative_mark=Decimal("0"),
                                                partial_credit=False)
        questions = [Question(id="q1", text="big", marking=oversized), _question("q2", "1")]

        summary = summarize(questions)

        assert summary.total_points == Decimal("1e30") + 1
        assert summary.average_points > 0


class TestMarkingRuleBounds:
    """Field constraints on MarkingRule."""

    def test_upper_bound_is_inclusive(self):
        assert MarkingRule(points=MAX_MARK, negative_mark=MAX_MARK).points == MAX_MARK

    def test_above_upper_bound(self):
        with pytest.raises(ValidationError):
            MarkingRule(points=MAX_MARK + 1)
        with pytest.raises(ValidationError):
            MarkingRule(negative_mark=Decimal("1e30"))

    def test_too_many_decimal_places(self):
        with pytest.raises(ValidationError):
            MarkingRule(points=Decimal("0.125"))
