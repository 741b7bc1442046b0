import threading

import pytest

import attempt_store
from database import get_connection, new_id
from errors import ConflictError
from models import Attempt, AttemptStatus, QuestionSnapshot, ScoringConfig


def _attempt(user_id, paper_id, started_at, n_questions=2):
    return Attempt(
        id=new_id(),
        user_id=user_id,
        paper_id=paper_id,
        questions=tuple(
            QuestionSnapshot(f"{i:032x}", f"Q{i}", ("a", "b", "c", "d"), i % 4)
            for i in range(1, n_questions + 1)
        ),
        scoring=ScoringConfig(marks_per_correct=2, negative_mark=0.5),
        started_at=started_at,
        time_limit_sec=600,
    )


def _count_in_progress(user_id, paper_id):
    with get_connection() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM attempts WHERE user_id = ? AND paper_id = ? AND status = ?",
            (user_id, paper_id, "in-progress"),
        ).fetchone()[0]


class TestCreateAndFind:
    def test_round_trips_snapshot_and_config(self, user, clock):
        attempt = _attempt(user.user_id, new_id(), clock())
        attempt_store.create(attempt)

        loaded = attempt_store.find_by_id(attempt.id)
        assert loaded.questions == attempt.questions
        assert loaded.scoring == attempt.scoring
        assert loaded.status is AttemptStatus.IN_PROGRESS
        assert loaded.started_at == clock()
        assert loaded.time_limit_sec == 600
        assert loaded.total_questions == 2

    def test_missing_attempt(self):
        assert attempt_store.find_by_id(new_id()) is None

    def test_second_in_progress_for_same_pair_conflicts(self, user, clock):
        paper_id = new_id()
        attempt_store.create(_attempt(user.user_id, paper_id, clock()))
        with pytest.raises(ConflictError):
            attempt_store.create(_attempt(user.user_id, paper_id, clock()))
        assert _count_in_progress(user.user_id, paper_id) == 1

    def test_conflict_leaves_no_orphan_snapshot_rows(self, user, clock):
        paper_id = new_id()
        attempt_store.create(_attempt(user.user_id, paper_id, clock()))
        loser = _attempt(user.user_id, paper_id, clock())
        with pytest.raises(ConflictError):
            attempt_store.create(loser)
        with get_connection() as conn:
            rows = conn.execute(
                "SELECT COUNT(*) FROM attempt_questions WHERE attempt_id = ?", (loser.id,)
            ).fetchone()[0]
        assert rows == 0

    def test_new_attempt_allowed_after_submission(self, user, clock):
        paper_id = new_id()
        first = attempt_store.create(_attempt(user.user_id, paper_id, clock()))
        attempt_store.update(first.id, {"status": AttemptStatus.SUBMITTED})
        attempt_store.create(_attempt(user.user_id, paper_id, clock()))
        assert _count_in_progress(user.user_id, paper_id) == 1

    def test_concurrent_creates_only_one_wins(self, user, clock):
        paper_id = new_id()
        outcomes = []
        barrier = threading.Barrier(6)

        def worker():
            barrier.wait()
            try:
                attempt_store.create(_attempt(user.user_id, paper_id, clock()))
                outcomes.append("created")
            except ConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("created") == 1
        assert outcomes.count("conflict") == 5
        assert _count_in_progress(user.user_id, paper_id) == 1

    def test_find_active_by_owner_and_paper(self, make_user, clock):
        owner, other = make_user(), make_user()
        paper_id = new_id()
        created = attempt_store.create(_attempt(owner.user_id, paper_id, clock()))
        assert attempt_store.find_active_by_owner_and_paper(owner.user_id, paper_id).id == created.id
        assert attempt_store.find_active_by_owner_and_paper(other.user_id, paper_id) is None


class TestAnswers:
    def test_upsert_overwrites_same_question(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        qid = attempt.questions[0].question_id

        assert attempt_store.upsert_answer(attempt.id, qid, 1, clock())
        assert attempt_store.upsert_answer(attempt.id, qid, 3, clock())

        answers = attempt_store.find_by_id(attempt.id).answers
        assert len(answers) == 1
        assert answers[0].selected_index == 3

    def test_upsert_can_clear(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        qid = attempt.questions[0].question_id
        attempt_store.upsert_answer(attempt.id, qid, 1, clock())
        attempt_store.upsert_answer(attempt.id, qid, None, clock())
        assert attempt_store.find_by_id(attempt.id).answers[0].selected_index is None

    def test_upsert_refused_once_submitted(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        attempt_store.update(attempt.id, {"status": AttemptStatus.SUBMITTED})
        qid = attempt.questions[0].question_id
        assert attempt_store.upsert_answer(attempt.id, qid, 1, clock()) is False
        assert attempt_store.find_by_id(attempt.id).answers == []

    def test_different_questions_do_not_clobber(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock(), n_questions=8))
        barrier = threading.Barrier(8)

        def worker(question):
            barrier.wait()
            attempt_store.upsert_answer(attempt.id, question.question_id, 2, clock())

        threads = [threading.Thread(target=worker, args=(q,)) for q in attempt.questions]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        answers = attempt_store.find_by_id(attempt.id).answers
        assert sorted(a.question_id for a in answers) == sorted(
            q.question_id for q in attempt.questions
        )


class TestConditionalUpdate:
    def test_guard_mismatch_returns_none(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        attempt_store.update(attempt.id, {"status": AttemptStatus.SUBMITTED, "score": 4})

        result = attempt_store.update(
            attempt.id, {"score": 99}, guard={"status": AttemptStatus.IN_PROGRESS}
        )
        assert result is None
        assert attempt_store.find_by_id(attempt.id).score == 4

    def test_guard_match_applies_patch(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        result = attempt_store.update(
            attempt.id,
            {"status": AttemptStatus.SUBMITTED, "score": 1.5, "submitted_at": clock()},
            guard={"status": AttemptStatus.IN_PROGRESS, "user_id": user.user_id},
        )
        assert result.status is AttemptStatus.SUBMITTED
        assert result.score == 1.5
        assert result.submitted_at == clock()

    def test_rejects_unknown_columns(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        with pytest.raises(ValueError):
            attempt_store.update(attempt.id, {"user_id": 7})
        with pytest.raises(ValueError):
            attempt_store.update(attempt.id, {"score": 1}, guard={"started_at": clock()})

    def test_finalize_runs_once(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))
        calls = []

        def patch(current):
            calls.append(current.id)
            return {"status": AttemptStatus.SUBMITTED, "score": 2}

        assert attempt_store.finalize(attempt.id, patch).score == 2
        assert attempt_store.finalize(attempt.id, patch) is None
        assert calls == [attempt.id]

    def test_finalize_rolls_back_on_error(self, user, clock):
        attempt = attempt_store.create(_attempt(user.user_id, new_id(), clock()))

        def boom(current):
            raise RuntimeError("scoring failed")

        with pytest.raises(RuntimeError):
            attempt_store.finalize(attempt.id, boom)
        assert attempt_store.find_by_id(attempt.id).status is AttemptStatus.IN_PROGRESS


class TestListByOwner:
    def test_newest_first_and_owner_only(self, make_user, clock):
        owner, other = make_user(), make_user()
        first = attempt_store.create(_attempt(owner.user_id, new_id(), clock()))
        clock.advance(60)
        second = attempt_store.create(_attempt(owner.user_id, new_id(), clock()))
        attempt_store.create(_attempt(other.user_id, new_id(), clock()))

        rows = attempt_store.list_by_owner(owner.user_id)
        assert [r["attempt_id"] for r in rows] == [second.id, first.id]
        assert "questions" not in rows[0]
