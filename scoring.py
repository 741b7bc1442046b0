"""
scoring.py – server-side grading of an attempt against its frozen snapshot.

Per question, in snapshot order:
    selected == correct_index   +marks_per_correct
    selected is None             0   (unanswered is never penalised)
    anything else               -penalty

The client never supplies a score; only recorded answers are read.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from models import QuestionSnapshot, ScoringConfig


@dataclass
class ScoreResult:
    score: float
    breakdown: list[dict]

    @property
    def correct(self) -> int:
        return sum(1 for b in self.breakdown if b["correct"])

    @property
    def unanswered(self) -> int:
        return sum(1 for b in self.breakdown if b["selected_index"] is None)

    @property
    def wrong(self) -> int:
        return len(self.breakdown) - self.correct - self.unanswered


def score(
    questions: Iterable[QuestionSnapshot],
    answer_index: Mapping[str, Optional[int]],
    config: ScoringConfig,
) -> ScoreResult:
    total = 0.0
    penalty = config.penalty
    breakdown = []

    for question in questions:
        selected = answer_index.get(question.question_id)
        correct = selected is not None and selected == question.correct_index
        if correct:
            total += config.marks_per_correct
        elif selected is not None:
            total -= penalty

        breakdown.append({
            "question_id":    question.question_id,
            "selected_index": selected,
            "correct_index":  question.correct_index,
            "correct":        correct,
        })

    return ScoreResult(score=total, breakdown=breakdown)


def percentage(total: float, total_questions: int, config: ScoringConfig) -> float:
    max_marks = total_questions * config.marks_per_correct
    if total_questions <= 0 or max_marks == 0:
        return 0
    return total / max_marks * 100
