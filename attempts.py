"""
attempts.py – lifecycle of a timed attempt: start → answer* → submit.

States are ``in-progress`` and ``submitted``; submitted is terminal.  Every
precondition is checked before anything is written, with one documented
exception: a late submission is persisted with score 0 *before*
TimeLimitExceededError is raised, so the attempt can never be left dangling
or resubmitted.

Collaborators (paper lookup, subscription gate, clock) are injected so the
engine can be exercised without the web layer.
"""

import logging
import math
from datetime import datetime
from typing import Callable, Optional

import attempt_store
import content
import subscriptions
from auth import Identity
from database import is_valid_id, new_id, utcnow
from errors import (
    ConflictError,
    ForbiddenError,
    InvalidIdError,
    InvalidReferenceError,
    InvalidStateError,
    NotFoundError,
    OutOfRangeError,
    TimeLimitExceededError,
)
from models import Attempt, AttemptStatus, ScoringConfig
from scoring import percentage, score
from snapshot import build_snapshot

logger = logging.getLogger(__name__)


def _elapsed_seconds(start: datetime, end: datetime) -> int:
    return max(math.floor((end - start).total_seconds()), 0)


class AttemptEngine:
    def __init__(
        self,
        find_paper: Callable = content.find_paper_with_questions,
        find_paper_duration: Callable = content.find_paper_duration,
        has_access: Callable = subscriptions.has_access,
        now: Callable[[], datetime] = utcnow,
    ):
        self.find_paper = find_paper
        self.find_paper_duration = find_paper_duration
        self.has_access = has_access
        self.now = now

    # ── Shared guards ─────────────────────────────────────────────────────────

    def _load(self, attempt_id: str) -> Attempt:
        if not is_valid_id(attempt_id):
            raise InvalidIdError("attempt_id", attempt_id)
        attempt = attempt_store.find_by_id(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt", attempt_id)
        return attempt

    def _load_owned(self, identity: Identity, attempt_id: str) -> Attempt:
        attempt = self._load(attempt_id)
        if attempt.user_id != identity.user_id:
            logger.warning(
                "User %s tried to modify attempt %s owned by %s",
                identity.user_id, attempt_id, attempt.user_id,
            )
            raise ForbiddenError("Not the attempt owner.")
        return attempt

    def _time_limit(self, attempt: Attempt) -> Optional[int]:
        """Allowed seconds for this attempt, or None when untimed or unknown."""
        if attempt.time_limit_sec is not None:
            return attempt.time_limit_sec if attempt.time_limit_sec > 0 else None
        # Legacy attempt without a captured limit: ask the content store.
        try:
            return self.find_paper_duration(attempt.paper_id)
        except Exception:
            logger.exception("Could not look up duration for paper %s", attempt.paper_id)
            return None

    # ── Transitions ───────────────────────────────────────────────────────────

    def start(
        self,
        identity: Identity,
        paper_id: str,
        scoring: Optional[ScoringConfig] = None,
    ) -> dict:
        if not is_valid_id(paper_id):
            raise InvalidIdError("paper_id", paper_id)

        paper = self.find_paper(paper_id)
        if paper is None:
            raise NotFoundError("Paper", paper_id)
        questions = build_snapshot(paper)

        if not self.has_access(identity.user_id, paper_id):
            raise ForbiddenError("No active subscription for this paper.")

        existing = attempt_store.find_active_by_owner_and_paper(identity.user_id, paper_id)
        if existing is not None:
            raise ConflictError(paper_id, existing.id)

        duration = paper.duration_sec if paper.duration_sec and paper.duration_sec > 0 else None
        attempt = Attempt(
            id=new_id(),
            user_id=identity.user_id,
            paper_id=paper_id,
            questions=tuple(questions),
            scoring=scoring or ScoringConfig.from_request(),
            started_at=self.now(),
            time_limit_sec=duration or 0,
        )
        attempt_store.create(attempt)
        logger.info(
            "Attempt %s started by user %s on paper %s (%d questions)",
            attempt.id, identity.user_id, paper_id, attempt.total_questions,
        )

        return {
            "attempt_id":      attempt.id,
            "paper_id":        paper_id,
            "total_questions": attempt.total_questions,
            "questions":       [q.sanitized() for q in attempt.questions],
            "duration_sec":    duration,
            "started_at":      attempt.started_at.isoformat(),
            "remaining_sec":   duration,
        }

    def answer(
        self,
        identity: Identity,
        attempt_id: str,
        question_id: str,
        selected_index: Optional[int] = None,
    ) -> dict:
        if not is_valid_id(attempt_id):
            raise InvalidIdError("attempt_id", attempt_id)
        if not is_valid_id(question_id):
            raise InvalidIdError("question_id", question_id)

        attempt = self._load_owned(identity, attempt_id)
        if not attempt.is_in_progress:
            raise InvalidStateError("Cannot answer a submitted attempt.")

        question = attempt.find_question(question_id)
        if question is None:
            raise InvalidReferenceError(question_id)

        if selected_index is not None:
            if (
                isinstance(selected_index, bool)
                or not isinstance(selected_index, int)
                or not 0 <= selected_index < question.option_count
            ):
                raise OutOfRangeError(selected_index, question.option_count)

        written = attempt_store.upsert_answer(attempt_id, question_id, selected_index, self.now())
        if not written:
            # Submitted between our read and the write.
            raise InvalidStateError("Cannot answer a submitted attempt.")
        logger.debug(
            "Attempt %s: question %s -> %s", attempt_id, question_id, selected_index
        )
        return {"attempt_id": attempt_id}

    def submit(self, identity: Identity, attempt_id: str) -> dict:
        attempt = self._load_owned(identity, attempt_id)
        if not attempt.is_in_progress:
            raise InvalidStateError("Attempt has already been submitted.")

        time_limit = self._time_limit(attempt)
        outcome = {}

        def finalize(current: Attempt) -> dict:
            result = score(current.questions, current.answer_index(), current.scoring)
            submitted_at = self.now()
            duration_sec = _elapsed_seconds(current.started_at, submitted_at)
            late = time_limit is not None and duration_sec > time_limit
            outcome.update(late=late, duration_sec=duration_sec, raw_score=result.score)
            return {
                "status":       AttemptStatus.SUBMITTED,
                "score":        0 if late else result.score,
                "submitted_at": submitted_at,
                "duration_sec": duration_sec,
            }

        submitted = attempt_store.finalize(attempt_id, finalize)
        if submitted is None:
            raise InvalidStateError("Attempt has already been submitted.")

        if outcome["late"]:
            logger.warning(
                "Attempt %s submitted after %ss (limit %ss); score %s forfeited",
                attempt_id, outcome["duration_sec"], time_limit, outcome["raw_score"],
            )
            raise TimeLimitExceededError(attempt_id, outcome["duration_sec"], time_limit)

        result = score(submitted.questions, submitted.answer_index(), submitted.scoring)
        logger.info(
            "Attempt %s submitted: score %s/%s in %ss",
            attempt_id, submitted.score, submitted.total_questions, submitted.duration_sec,
        )
        return {
            "attempt_id": attempt_id,
            "score":      submitted.score,
            "total":      submitted.total_questions,
            "percent":    percentage(
                submitted.score, submitted.total_questions, submitted.scoring
            ),
            "correct":    result.correct,
            "wrong":      result.wrong,
            "unanswered": result.unanswered,
            "breakdown":  result.breakdown,
        }

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get(self, identity: Identity, attempt_id: str) -> dict:
        attempt = self._load(attempt_id)
        if attempt.user_id != identity.user_id and not identity.is_admin:
            raise ForbiddenError("Not the attempt owner.")

        view = {
            "attempt_id":      attempt.id,
            "paper_id":        attempt.paper_id,
            "status":          attempt.status.value,
            "started_at":      attempt.started_at.isoformat(),
            "total_questions": attempt.total_questions,
        }

        if attempt.status is AttemptStatus.IN_PROGRESS:
            remaining = None
            time_limit = self._time_limit(attempt)
            if time_limit is not None:
                elapsed = _elapsed_seconds(attempt.started_at, self.now())
                remaining = max(time_limit - elapsed, 0)
            view.update(
                questions=[q.sanitized() for q in attempt.questions],
                answers=[a.to_dict() for a in attempt.answers],
                remaining_sec=remaining,
            )
            return view

        if attempt.status is AttemptStatus.SUBMITTED:
            result = score(attempt.questions, attempt.answer_index(), attempt.scoring)
            breakdown = []
            for question, entry in zip(attempt.questions, result.breakdown):
                breakdown.append({**question.sanitized(), **entry})
            view.update(
                score=attempt.score,
                total=attempt.total_questions,
                percent=percentage(attempt.score, attempt.total_questions, attempt.scoring),
                submitted_at=attempt.submitted_at.isoformat() if attempt.submitted_at else None,
                duration_sec=attempt.duration_sec,
                breakdown=breakdown,
            )
            return view

        raise ValueError(f"Unhandled attempt status {attempt.status!r}")

    def list_mine(self, identity: Identity) -> list[dict]:
        return attempt_store.list_by_owner(identity.user_id)
