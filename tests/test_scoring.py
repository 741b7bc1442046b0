import math

import pytest

from models import QuestionSnapshot, ScoringConfig
from scoring import percentage, score


def _questions(correct_indices):
    return [
        QuestionSnapshot(
            question_id=f"{n:032x}",
            text=f"Q{n}",
            options=("a", "b", "c", "d"),
            correct_index=ci,
        )
        for n, ci in enumerate(correct_indices, start=1)
    ]


class TestScore:
    def test_mixed_answers_with_negative_marking(self):
        """correct, wrong, unanswered, correct at 2 marks and 0.5 penalty."""
        qs = _questions([0, 1, 2, 3])
        answers = {qs[0].question_id: 0, qs[1].question_id: 3, qs[3].question_id: 3}
        config = ScoringConfig(marks_per_correct=2, negative_mark=0.5)

        result = score(qs, answers, config)

        assert result.score == 3.5
        assert percentage(result.score, 4, config) == 43.75
        assert [b["correct"] for b in result.breakdown] == [True, False, False, True]
        assert result.correct == 2
        assert result.wrong == 1
        assert result.unanswered == 1

    def test_unanswered_never_penalised(self):
        qs = _questions([0, 0, 0])
        config = ScoringConfig(marks_per_correct=1, negative_mark=5)
        result = score(qs, {qs[0].question_id: None}, config)
        assert result.score == 0
        assert all(b["selected_index"] is None for b in result.breakdown)

    def test_score_can_go_negative(self):
        qs = _questions([0, 0])
        config = ScoringConfig(marks_per_correct=1, negative_mark=1)
        result = score(qs, {q.question_id: 2 for q in qs}, config)
        assert result.score == -2

    @pytest.mark.parametrize("bad_penalty", [0, -1, math.nan, math.inf, None, "1"])
    def test_invalid_penalty_counts_as_zero(self, bad_penalty):
        qs = _questions([0])
        config = ScoringConfig(marks_per_correct=1, negative_mark=bad_penalty)
        assert score(qs, {qs[0].question_id: 3}, config).score == 0

    def test_question_without_correct_option_never_scores(self):
        qs = _questions([-1])
        config = ScoringConfig(marks_per_correct=1, negative_mark=0.25)
        result = score(qs, {qs[0].question_id: 0}, config)
        assert result.score == -0.25
        assert result.breakdown[0]["correct"] is False

    def test_breakdown_follows_snapshot_order(self):
        qs = _questions([3, 2, 1, 0])
        answers = {qs[2].question_id: 1, qs[0].question_id: 0}
        result = score(qs, answers, ScoringConfig())
        assert [b["question_id"] for b in result.breakdown] == [q.question_id for q in qs]
        assert [b["correct_index"] for b in result.breakdown] == [3, 2, 1, 0]

    def test_answers_for_unknown_questions_are_ignored(self):
        qs = _questions([0])
        answers = {qs[0].question_id: 0, "f" * 32: 1}
        result = score(qs, answers, ScoringConfig())
        assert result.score == 1
        assert len(result.breakdown) == 1


class TestPercentage:
    def test_zero_questions(self):
        assert percentage(0, 0, ScoringConfig()) == 0

    def test_uses_marks_per_correct(self):
        assert percentage(6, 4, ScoringConfig(marks_per_correct=3)) == 50
