"""
database.py – SQLite connection handling and schema for the attempt service.

All tables are created idempotently on startup.  The partial unique index
``ux_attempts_active`` is what actually guarantees a single in-progress
attempt per (user, paper); the application-level lookup in the state machine
is only a fast path.
"""

import logging
import re
import sqlite3
import uuid
from datetime import datetime, timezone

import settings

logger = logging.getLogger(__name__)

DB_PATH = settings.DB_PATH

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def get_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH, timeout=settings.SQLITE_TIMEOUT)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def new_id() -> str:
    return uuid.uuid4().hex


def is_valid_id(value) -> bool:
    return isinstance(value, str) and bool(_ID_RE.match(value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value):
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_SCHEMA = [
    # ── Users ────────────────────────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS users (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        email         TEXT    NOT NULL UNIQUE,
        username      TEXT    NOT NULL,
        password_hash TEXT    NOT NULL,
        is_admin      INTEGER NOT NULL DEFAULT 0,
        created_at    TEXT    NOT NULL DEFAULT (datetime('now'))
    )
    """,
    # ── Content ──────────────────────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS papers (
        id           TEXT    PRIMARY KEY,
        title        TEXT    NOT NULL,
        subject      TEXT    NOT NULL,
        price        REAL    NOT NULL DEFAULT 0,
        duration_sec INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS questions (
        id         TEXT PRIMARY KEY,
        text       TEXT NOT NULL,
        difficulty TEXT NOT NULL DEFAULT 'medium'
                        CHECK(difficulty IN ('easy','medium','hard')),
        domain     TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS question_options (
        question_id TEXT    NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
        position    INTEGER NOT NULL,
        option_text TEXT    NOT NULL,
        is_correct  INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (question_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS paper_questions (
        paper_id    TEXT    NOT NULL REFERENCES papers(id) ON DELETE CASCADE,
        position    INTEGER NOT NULL,
        question_id TEXT    NOT NULL REFERENCES questions(id),
        PRIMARY KEY (paper_id, position)
    )
    """,
    # ── Subscriptions ────────────────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS test_series (
        id    TEXT PRIMARY KEY,
        title TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS test_series_papers (
        series_id TEXT NOT NULL REFERENCES test_series(id) ON DELETE CASCADE,
        paper_id  TEXT NOT NULL REFERENCES papers(id) ON DELETE CASCADE,
        PRIMARY KEY (series_id, paper_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id         INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id    INTEGER NOT NULL REFERENCES users(id),
        type       TEXT    NOT NULL
                           CHECK(type IN ('all-access','single-paper','test-series')),
        item_id    TEXT,
        status     TEXT    NOT NULL DEFAULT 'active',
        start_date TEXT    NOT NULL,
        end_date   TEXT    NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_subscription_user ON subscriptions(user_id, status)",
    # ── Attempts ─────────────────────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS attempts (
        id                TEXT    PRIMARY KEY,
        user_id           INTEGER NOT NULL,
        paper_id          TEXT    NOT NULL,
        status            TEXT    NOT NULL DEFAULT 'in-progress'
                                  CHECK(status IN ('in-progress','submitted')),
        total_questions   INTEGER NOT NULL,
        score             REAL    NOT NULL DEFAULT 0,
        marks_per_correct REAL    NOT NULL DEFAULT 1,
        negative_mark     REAL    NOT NULL DEFAULT 0,
        time_limit_sec    INTEGER,
        started_at        TEXT    NOT NULL,
        submitted_at      TEXT,
        duration_sec      INTEGER
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_attempts_active
        ON attempts(user_id, paper_id) WHERE status = 'in-progress'
    """,
    "CREATE INDEX IF NOT EXISTS idx_attempt_user ON attempts(user_id, started_at)",
    """
    CREATE TABLE IF NOT EXISTS attempt_questions (
        attempt_id    TEXT    NOT NULL REFERENCES attempts(id) ON DELETE CASCADE,
        position      INTEGER NOT NULL,
        question_id   TEXT    NOT NULL,
        text          TEXT    NOT NULL,
        options_json  TEXT    NOT NULL,
        correct_index INTEGER NOT NULL,
        PRIMARY KEY (attempt_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attempt_answers (
        attempt_id     TEXT    NOT NULL REFERENCES attempts(id) ON DELETE CASCADE,
        question_id    TEXT    NOT NULL,
        selected_index INTEGER,
        answered_at    TEXT    NOT NULL,
        UNIQUE(attempt_id, question_id)
    )
    """,
]


def init_db() -> None:
    """Create every table and index if missing.  Safe to call repeatedly."""
    with get_connection() as conn:
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()
    logger.info("Database schema ready at %s", DB_PATH)
