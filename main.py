"""
Mock Test Attempts – FastAPI Backend
Timed multiple-choice attempts with tamper-proof, server-side scoring.

An attempt freezes its paper's questions at start, records answers one
question at a time, and is graded once on submit against that frozen copy.
Scoring uses per-attempt marks and optional negative marking; a submission
past the paper's duration is finalised with score 0.

Endpoints:
  POST /api/attempts/start/{paper_id}      start (subscription required)
  POST /api/attempts/{attempt_id}/answer   record / clear one answer
  POST /api/attempts/{attempt_id}/submit   grade and lock
  GET  /api/attempts/{attempt_id}          in-progress view or review
  GET  /api/attempts                       caller's history
"""

import logging
import os
import sqlite3
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt

import settings
from attempts import AttemptEngine
from auth import (
    ROLE_ADMIN, ROLE_USER, Identity,
    create_access_token, get_current_user, hash_password, verify_password,
)
from database import get_connection, init_db
from errors import AttemptError
from models import ScoringConfig

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# App setup
# ──────────────────────────────────────────────

app = FastAPI(title="Mock Test Attempts")

_engine = AttemptEngine()


def get_engine() -> AttemptEngine:
    return _engine


@app.on_event("startup")
def on_startup():
    init_db()


# ──────────────────────────────────────────────
# Error handling
# ──────────────────────────────────────────────

@app.exception_handler(AttemptError)
async def attempt_error_handler(request: Request, exc: AttemptError):
    logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_id = uuid.uuid4().hex[:8]
    logger.error(
        "[%s] Unhandled exception on %s", log_id, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail":  "An unexpected error occurred.",
            "code":    "INTERNAL_ERROR",
            "details": {"log_id": log_id},
        },
    )


# ── User helpers ──────────────────────────────────────────────────────────────

def db_create_user(email: str, username: str, password_hash: str) -> int:
    with get_connection() as conn:
        cur = conn.execute(
            "INSERT INTO users (email, username, password_hash) VALUES (?,?,?)",
            (email, username, password_hash),
        )
        conn.commit()
        return cur.lastrowid


def db_get_user_by_email(email: str) -> Optional[dict]:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT id, email, username, password_hash, is_admin FROM users WHERE email = ?",
            (email,),
        ).fetchone()
    return dict(row) if row else None


# ──────────────────────────────────────────────
# Pydantic request models
# ──────────────────────────────────────────────

class SignupRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class StartAttemptRequest(BaseModel):
    """Optional per-attempt marking scheme; omitted fields use server defaults."""
    model_config = ConfigDict(extra="forbid")

    marks_per_q:   Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    negative_mark: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class AnswerRequest(BaseModel):
    """selected_index absent or null clears the answer."""
    model_config = ConfigDict(extra="forbid")

    question_id:    str
    selected_index: Optional[StrictInt] = None


# ──────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────

@app.get("/health")
def health():
    return {"status": "healthy"}


# ── Auth API ──────────────────────────────────

@app.post("/api/auth/signup")
def api_signup(body: SignupRequest):
    if len(body.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters.")
    email = body.email.lower().strip()
    if db_get_user_by_email(email):
        raise HTTPException(status_code=409, detail="An account with this email already exists.")
    try:
        user_id = db_create_user(email, body.username.strip(), hash_password(body.password))
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="An account with this email already exists.")
    token = create_access_token(user_id, email)
    return {"token": token, "user_id": user_id, "username": body.username}


@app.post("/api/auth/login")
def api_login(body: LoginRequest):
    user = db_get_user_by_email(body.email.lower().strip())
    if not user or not verify_password(body.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid email or password.")
    role = ROLE_ADMIN if user["is_admin"] else ROLE_USER
    token = create_access_token(user["id"], user["email"], role)
    return {"token": token, "user_id": user["id"], "username": user["username"]}


# ── Attempt API ───────────────────────────────

@app.post("/api/attempts/start/{paper_id}", status_code=status.HTTP_201_CREATED)
def api_start_attempt(
    paper_id: str,
    body: Optional[StartAttemptRequest] = None,
    current_user: Identity = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_engine),
):
    body = body or StartAttemptRequest()
    scoring = ScoringConfig.from_request(body.marks_per_q, body.negative_mark)
    return engine.start(current_user, paper_id, scoring)


@app.post("/api/attempts/{attempt_id}/answer")
def api_answer(
    attempt_id: str,
    body: AnswerRequest,
    current_user: Identity = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_engine),
):
    return engine.answer(current_user, attempt_id, body.question_id, body.selected_index)


@app.post("/api/attempts/{attempt_id}/submit")
def api_submit(
    attempt_id: str,
    current_user: Identity = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_engine),
):
    """Grade server-side and lock the attempt.

    A late submission still locks the attempt (score 0) and answers 400
    TIME_LIMIT_EXCEEDED; the error does not mean nothing changed.
    """
    return engine.submit(current_user, attempt_id)


@app.get("/api/attempts/{attempt_id}")
def api_get_attempt(
    attempt_id: str,
    current_user: Identity = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_engine),
):
    return engine.get(current_user, attempt_id)


@app.get("/api/attempts")
def api_list_attempts(
    current_user: Identity = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_engine),
):
    return engine.list_mine(current_user)


# ──────────────────────────────────────────────
# Local dev entry-point
# ──────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
