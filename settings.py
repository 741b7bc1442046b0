"""
settings.py – environment-driven configuration for the attempt service.

Every value can be overridden with an environment variable of the same name
(DB_PATH uses MOCKTEST_DB_PATH).  Scoring defaults are only consulted when an
attempt is started; the resulting ScoringConfig is frozen onto the attempt.
"""

import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DB_PATH        = os.environ.get("MOCKTEST_DB_PATH", os.path.join(BASE_DIR, "attempts.db"))
SQLITE_TIMEOUT = float(os.environ.get("SQLITE_TIMEOUT", "5.0"))

SECRET_FILE       = os.path.join(BASE_DIR, ".jwt_secret")
TOKEN_EXPIRE_DAYS = int(os.environ.get("TOKEN_EXPIRE_DAYS", "7"))

DEFAULT_MARKS_PER_CORRECT = float(os.environ.get("DEFAULT_MARKS_PER_CORRECT", "1"))
DEFAULT_NEGATIVE_MARK     = float(os.environ.get("DEFAULT_NEGATIVE_MARK", "0"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
