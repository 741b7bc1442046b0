"""
attempt_store.py – persistence for Attempt aggregates.

Concurrency rules enforced here, not in the caller:
  - ``create`` relies on the partial unique index ux_attempts_active; two
    racing starts for the same (user, paper) cannot both commit.
  - ``update`` is one conditional UPDATE, so "set status=submitted where
    status=in-progress" cannot double-apply.  ``finalize`` runs the same
    guarded UPDATE under BEGIN IMMEDIATE so the answers it scores are the
    answers that were recorded.
  - ``upsert_answer`` is one INSERT ... SELECT guarded on the attempt still
    being in progress, keyed by (attempt_id, question_id).
"""

import json
import logging
import sqlite3
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from database import from_db_time, get_connection, to_db_time
from errors import ConflictError
from models import AnswerRecord, Attempt, AttemptStatus, QuestionSnapshot, ScoringConfig

logger = logging.getLogger(__name__)

_PATCHABLE = {"status", "score", "submitted_at", "duration_sec", "time_limit_sec"}
_GUARDABLE = {"status", "user_id", "paper_id", "time_limit_sec"}


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_db_time(value)
    return value


# ── Row mapping ───────────────────────────────────────────────────────────────

def _load_questions(conn, attempt_id: str) -> tuple[QuestionSnapshot, ...]:
    rows = conn.execute(
        """SELECT question_id, text, options_json, correct_index
           FROM   attempt_questions
           WHERE  attempt_id = ?
           ORDER  BY position""",
        (attempt_id,),
    ).fetchall()
    return tuple(
        QuestionSnapshot(
            question_id=r["question_id"],
            text=r["text"],
            options=tuple(json.loads(r["options_json"])),
            correct_index=r["correct_index"],
        )
        for r in rows
    )


def _load_answers(conn, attempt_id: str) -> list[AnswerRecord]:
    rows = conn.execute(
        """SELECT question_id, selected_index, answered_at
           FROM   attempt_answers
           WHERE  attempt_id = ?
           ORDER  BY rowid""",
        (attempt_id,),
    ).fetchall()
    return [
        AnswerRecord(
            question_id=r["question_id"],
            selected_index=r["selected_index"],
            answered_at=from_db_time(r["answered_at"]),
        )
        for r in rows
    ]


def _row_to_attempt(conn, row: sqlite3.Row) -> Attempt:
    return Attempt(
        id=row["id"],
        user_id=row["user_id"],
        paper_id=row["paper_id"],
        status=AttemptStatus(row["status"]),
        questions=_load_questions(conn, row["id"]),
        answers=_load_answers(conn, row["id"]),
        scoring=ScoringConfig(
            marks_per_correct=row["marks_per_correct"],
            negative_mark=row["negative_mark"],
        ),
        score=row["score"],
        started_at=from_db_time(row["started_at"]),
        submitted_at=from_db_time(row["submitted_at"]),
        duration_sec=row["duration_sec"],
        time_limit_sec=row["time_limit_sec"],
    )


# ── Repository operations ─────────────────────────────────────────────────────

def create(attempt: Attempt) -> Attempt:
    """Persist a new attempt with its snapshot in one transaction.

    Raises ConflictError when another in-progress attempt for the same
    (user, paper) already committed.
    """
    try:
        with get_connection() as conn:
            conn.execute(
                """INSERT INTO attempts
                       (id, user_id, paper_id, status, total_questions, score,
                        marks_per_correct, negative_mark, time_limit_sec, started_at)
                   VALUES (?,?,?,?,?,?,?,?,?,?)""",
                (
                    attempt.id,
                    attempt.user_id,
                    attempt.paper_id,
                    attempt.status.value,
                    attempt.total_questions,
                    attempt.score,
                    attempt.scoring.marks_per_correct,
                    attempt.scoring.negative_mark,
                    attempt.time_limit_sec,
                    to_db_time(attempt.started_at),
                ),
            )
            conn.executemany(
                """INSERT INTO attempt_questions
                       (attempt_id, position, question_id, text, options_json, correct_index)
                   VALUES (?,?,?,?,?,?)""",
                [
                    (
                        attempt.id,
                        pos,
                        q.question_id,
                        q.text,
                        json.dumps(list(q.options)),
                        q.correct_index,
                    )
                    for pos, q in enumerate(attempt.questions)
                ],
            )
            conn.commit()
    except sqlite3.IntegrityError as exc:
        if "attempts.user_id" in str(exc):
            logger.info(
                "Rejected concurrent start for user %s on paper %s",
                attempt.user_id, attempt.paper_id,
            )
            raise ConflictError(attempt.paper_id) from exc
        raise
    return attempt


def find_by_id(attempt_id: str) -> Optional[Attempt]:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM attempts WHERE id = ?", (attempt_id,)).fetchone()
        return _row_to_attempt(conn, row) if row else None


def find_active_by_owner_and_paper(user_id: int, paper_id: str) -> Optional[Attempt]:
    with get_connection() as conn:
        row = conn.execute(
            """SELECT * FROM attempts
               WHERE user_id = ? AND paper_id = ? AND status = ?""",
            (user_id, paper_id, AttemptStatus.IN_PROGRESS.value),
        ).fetchone()
        return _row_to_attempt(conn, row) if row else None


def list_by_owner(user_id: int) -> list[dict]:
    """Lightweight history rows, newest first.  No snapshot data."""
    with get_connection() as conn:
        rows = conn.execute(
            """SELECT id, paper_id, status, score, total_questions,
                      started_at, submitted_at, duration_sec
               FROM   attempts
               WHERE  user_id = ?
               ORDER  BY started_at DESC, rowid DESC""",
            (user_id,),
        ).fetchall()
    return [
        {
            "attempt_id":      r["id"],
            "paper_id":        r["paper_id"],
            "status":          r["status"],
            "score":           r["score"],
            "total_questions": r["total_questions"],
            "started_at":      r["started_at"],
            "submitted_at":    r["submitted_at"],
            "duration_sec":    r["duration_sec"],
        }
        for r in rows
    ]


def upsert_answer(
    attempt_id: str,
    question_id: str,
    selected_index: Optional[int],
    answered_at: datetime,
) -> bool:
    """Insert or overwrite the answer for one question.

    Returns False when the attempt was no longer in progress at write time.
    """
    with get_connection() as conn:
        written = conn.execute(
            """INSERT INTO attempt_answers (attempt_id, question_id, selected_index, answered_at)
               SELECT ?, ?, ?, ?
               WHERE  EXISTS (SELECT 1 FROM attempts WHERE id = ? AND status = ?)
               ON CONFLICT(attempt_id, question_id) DO UPDATE SET
                   selected_index = excluded.selected_index,
                   answered_at    = excluded.answered_at""",
            (
                attempt_id,
                question_id,
                selected_index,
                to_db_time(answered_at),
                attempt_id,
                AttemptStatus.IN_PROGRESS.value,
            ),
        ).rowcount
        conn.commit()
    return written > 0


def _apply_update(conn, attempt_id: str, patch: dict, guard: Optional[dict]) -> int:
    if not patch:
        raise ValueError("update needs at least one column to set")

    sets, params = [], []
    for column, value in patch.items():
        if column not in _PATCHABLE:
            raise ValueError(f"Column {column!r} cannot be updated")
        sets.append(f"{column} = ?")
        params.append(_to_db(value))

    where = ["id = ?"]
    params.append(attempt_id)
    for column, value in (guard or {}).items():
        if column not in _GUARDABLE:
            raise ValueError(f"Column {column!r} cannot be used as a guard")
        if value is None:
            where.append(f"{column} IS NULL")
        else:
            where.append(f"{column} = ?")
            params.append(_to_db(value))

    return conn.execute(
        f"UPDATE attempts SET {', '.join(sets)} WHERE {' AND '.join(where)}",
        params,
    ).rowcount


def update(attempt_id: str, patch: dict, guard: Optional[dict] = None) -> Optional[Attempt]:
    """Apply ``patch`` only if every ``guard`` column still holds its value.

    Returns the updated attempt, or None when the guard did not match (or the
    attempt does not exist).  Check and write happen in a single statement.
    """
    with get_connection() as conn:
        updated = _apply_update(conn, attempt_id, patch, guard)
        conn.commit()

    if updated == 0:
        return None
    return find_by_id(attempt_id)


def finalize(attempt_id: str, compute_patch: Callable[[Attempt], dict]) -> Optional[Attempt]:
    """Submit transition under the database write lock.

    The in-progress attempt (answers included) is re-read after taking the
    lock, ``compute_patch`` derives the final columns from it, and the patch is
    written guarded on status still being in-progress.  No answer can land
    between the read that is scored and the status change.  Returns None if
    the attempt is missing or no longer in progress.
    """
    conn = get_connection()
    try:
        conn.execute("BEGIN IMMEDIATE")
        row = conn.execute(
            "SELECT * FROM attempts WHERE id = ? AND status = ?",
            (attempt_id, AttemptStatus.IN_PROGRESS.value),
        ).fetchone()
        if row is None:
            conn.rollback()
            return None
        patch = compute_patch(_row_to_attempt(conn, row))
        _apply_update(conn, attempt_id, patch, {"status": AttemptStatus.IN_PROGRESS})
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    return find_by_id(attempt_id)


def find_missing_time_limits() -> list[dict]:
    """In-progress attempts started before time limits were captured."""
    with get_connection() as conn:
        rows = conn.execute(
            """SELECT id, paper_id FROM attempts
               WHERE status = ? AND time_limit_sec IS NULL""",
            (AttemptStatus.IN_PROGRESS.value,),
        ).fetchall()
    return [dict(r) for r in rows]
