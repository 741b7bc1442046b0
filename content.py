"""
content.py – read access to papers and questions, plus seeding helpers.

The attempt engine only ever reads through ``find_paper_with_questions`` and
``find_paper_duration``.  The write helpers exist for seeding and tests; the
admin content surface lives elsewhere.
"""

from dataclasses import dataclass, field
from typing import Optional

from database import get_connection, new_id


@dataclass
class Option:
    option_text: str
    is_correct: bool = False


@dataclass
class Question:
    id: str
    text: str
    options: list[Option] = field(default_factory=list)
    difficulty: str = "medium"
    domain: str = ""


@dataclass
class Paper:
    id: str
    title: str
    subject: str
    price: float = 0.0
    duration_sec: Optional[int] = None
    questions: list[Question] = field(default_factory=list)


# ── Reads ─────────────────────────────────────────────────────────────────────

def _load_question(conn, question_id: str) -> Optional[Question]:
    row = conn.execute(
        "SELECT id, text, difficulty, domain FROM questions WHERE id = ?",
        (question_id,),
    ).fetchone()
    if not row:
        return None
    options = conn.execute(
        """SELECT option_text, is_correct FROM question_options
           WHERE question_id = ? ORDER BY position""",
        (question_id,),
    ).fetchall()
    return Question(
        id=row["id"],
        text=row["text"],
        difficulty=row["difficulty"],
        domain=row["domain"],
        options=[Option(o["option_text"], bool(o["is_correct"])) for o in options],
    )


def find_paper_with_questions(paper_id: str) -> Optional[Paper]:
    """Return the paper with its ordered questions and option correctness flags."""
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM papers WHERE id = ?", (paper_id,)).fetchone()
        if not row:
            return None
        refs = conn.execute(
            "SELECT question_id FROM paper_questions WHERE paper_id = ? ORDER BY position",
            (paper_id,),
        ).fetchall()
        questions = []
        for ref in refs:
            question = _load_question(conn, ref["question_id"])
            if question is not None:
                questions.append(question)
    return Paper(
        id=row["id"],
        title=row["title"],
        subject=row["subject"],
        price=row["price"],
        duration_sec=row["duration_sec"] or None,
        questions=questions,
    )


def find_paper_duration(paper_id: str) -> Optional[int]:
    """Configured duration in seconds, or None when untimed or missing."""
    with get_connection() as conn:
        row = conn.execute(
            "SELECT duration_sec FROM papers WHERE id = ?", (paper_id,)
        ).fetchone()
    if not row or not row["duration_sec"] or row["duration_sec"] <= 0:
        return None
    return int(row["duration_sec"])


# ── Writes (seeding / tests) ──────────────────────────────────────────────────

def _write_options(conn, question_id: str, options: list[Option]) -> None:
    conn.execute("DELETE FROM question_options WHERE question_id = ?", (question_id,))
    conn.executemany(
        """INSERT INTO question_options (question_id, position, option_text, is_correct)
           VALUES (?,?,?,?)""",
        [
            (question_id, pos, opt.option_text, int(opt.is_correct))
            for pos, opt in enumerate(options)
        ],
    )


def create_question(
    text: str,
    options: list[Option],
    difficulty: str = "medium",
    domain: str = "",
) -> str:
    question_id = new_id()
    with get_connection() as conn:
        conn.execute(
            "INSERT INTO questions (id, text, difficulty, domain) VALUES (?,?,?,?)",
            (question_id, text, difficulty, domain),
        )
        _write_options(conn, question_id, options)
        conn.commit()
    return question_id


def update_question(
    question_id: str,
    text: Optional[str] = None,
    options: Optional[list[Option]] = None,
) -> bool:
    """Edit a live question.  Returns True if the row existed."""
    with get_connection() as conn:
        exists = conn.execute(
            "SELECT 1 FROM questions WHERE id = ?", (question_id,)
        ).fetchone()
        if not exists:
            return False
        if text is not None:
            conn.execute("UPDATE questions SET text = ? WHERE id = ?", (text, question_id))
        if options is not None:
            _write_options(conn, question_id, options)
        conn.commit()
    return True


def create_paper(
    title: str,
    subject: str,
    question_ids: list[str],
    price: float = 0.0,
    duration_sec: int = 0,
) -> str:
    paper_id = new_id()
    with get_connection() as conn:
        conn.execute(
            """INSERT INTO papers (id, title, subject, price, duration_sec)
               VALUES (?,?,?,?,?)""",
            (paper_id, title, subject, price, duration_sec),
        )
        conn.executemany(
            "INSERT INTO paper_questions (paper_id, position, question_id) VALUES (?,?,?)",
            [(paper_id, pos, qid) for pos, qid in enumerate(question_ids)],
        )
        conn.commit()
    return paper_id


def set_paper_duration(paper_id: str, duration_sec: int) -> bool:
    with get_connection() as conn:
        updated = conn.execute(
            "UPDATE papers SET duration_sec = ? WHERE id = ?", (duration_sec, paper_id)
        ).rowcount
        conn.commit()
    return updated > 0
