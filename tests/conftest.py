import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

import database
import main
from attempts import AttemptEngine
from auth import ROLE_ADMIN, ROLE_USER, Identity, create_access_token
from content import Option, create_paper, create_question
from subscriptions import grant_subscription


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", str(tmp_path / "attempts.db"))
    database.init_db()
    return database.DB_PATH


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine(clock):
    return AttemptEngine(now=clock)


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(is_admin: bool = False, subscribed: bool = True) -> Identity:
        counter["n"] += 1
        email = f"user{counter['n']}@example.com"
        user_id = main.db_create_user(email, f"user{counter['n']}", "not-a-real-hash")
        if subscribed:
            grant_subscription(user_id, "all-access", days=365)
        return Identity(user_id=user_id, email=email, role=ROLE_ADMIN if is_admin else ROLE_USER)

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def make_paper():
    """Build a paper of 4-option questions; ``correct`` lists each correct index."""

    def _make(correct=(0, 1, 2, 3), duration_sec: int = 0, options_per_question: int = 4):
        question_ids = []
        for number, answer in enumerate(correct, start=1):
            options = [
                Option(f"Q{number} option {idx}", is_correct=(idx == answer))
                for idx in range(options_per_question)
            ]
            question_ids.append(create_question(f"Question {number}?", options))
        paper_id = create_paper(
            "Sample Paper", "Physics", question_ids, price=99, duration_sec=duration_sec
        )
        return paper_id, question_ids

    return _make


@pytest.fixture
def client(engine):
    main.app.dependency_overrides[main.get_engine] = lambda: engine
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def auth_header(identity: Identity) -> dict:
    token = create_access_token(identity.user_id, identity.email, identity.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_header
