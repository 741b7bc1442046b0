"""
models.py – the Attempt aggregate and the value objects it owns.

QuestionSnapshot and ScoringConfig are frozen: once an attempt has started,
neither the questions it grades against nor the marks it awards can change.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

import settings


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class QuestionSnapshot:
    question_id: str
    text: str
    options: tuple[str, ...]
    correct_index: int

    @property
    def option_count(self) -> int:
        return len(self.options)

    def sanitized(self) -> dict:
        """Client view while answering: option text and position, never correctness."""
        return {
            "question_id": self.question_id,
            "text":        self.text,
            "options":     [
                {"index": idx, "option_text": text}
                for idx, text in enumerate(self.options)
            ],
        }


@dataclass(frozen=True)
class ScoringConfig:
    marks_per_correct: float = 1.0
    negative_mark: float = 0.0

    @classmethod
    def from_request(
        cls,
        marks_per_correct: Optional[float] = None,
        negative_mark: Optional[float] = None,
    ) -> "ScoringConfig":
        return cls(
            marks_per_correct=(
                settings.DEFAULT_MARKS_PER_CORRECT
                if marks_per_correct is None else float(marks_per_correct)
            ),
            negative_mark=(
                settings.DEFAULT_NEGATIVE_MARK
                if negative_mark is None else float(negative_mark)
            ),
        )

    @property
    def penalty(self) -> float:
        """Deduction for a wrong answer; anything but a positive finite number is 0."""
        value = self.negative_mark
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0.0
        if not math.isfinite(value) or value <= 0:
            return 0.0
        return float(value)


@dataclass
class AnswerRecord:
    question_id: str
    selected_index: Optional[int]
    answered_at: datetime

    def to_dict(self) -> dict:
        return {
            "question_id":    self.question_id,
            "selected_index": self.selected_index,
            "answered_at":    self.answered_at.isoformat(),
        }


@dataclass
class Attempt:
    id: str
    user_id: int
    paper_id: str
    questions: tuple[QuestionSnapshot, ...]
    scoring: ScoringConfig
    started_at: datetime
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    answers: list[AnswerRecord] = field(default_factory=list)
    score: float = 0.0
    submitted_at: Optional[datetime] = None
    duration_sec: Optional[int] = None
    # 0 means untimed; None means not captured (legacy attempt)
    time_limit_sec: Optional[int] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def is_in_progress(self) -> bool:
        return self.status is AttemptStatus.IN_PROGRESS

    def find_question(self, question_id: str) -> Optional[QuestionSnapshot]:
        for question in self.questions:
            if question.question_id == question_id:
                return question
        return None

    def answer_index(self) -> dict[str, Optional[int]]:
        return {a.question_id: a.selected_index for a in self.answers}

    def summary(self) -> dict:
        return {
            "attempt_id":      self.id,
            "paper_id":        self.paper_id,
            "status":          self.status.value,
            "score":           self.score,
            "total_questions": self.total_questions,
            "started_at":      self.started_at.isoformat(),
            "submitted_at":    self.submitted_at.isoformat() if self.submitted_at else None,
            "duration_sec":    self.duration_sec,
        }
