"""
auth.py – JWT + bcrypt identity for the attempt service.

Tokens carry the user id, email and role.  The attempt engine only ever sees
an ``Identity``; it never touches tokens or passwords.
"""

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt as _bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

import settings

logger = logging.getLogger(__name__)

ROLE_USER  = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# ── Config ────────────────────────────────────────────────────────────────────


def _load_or_create_secret() -> str:
    """Return a JWT secret that survives restarts.

    SECRET_KEY from the environment wins; otherwise a random secret is
    generated once and kept in settings.SECRET_FILE.
    """
    env = os.environ.get("SECRET_KEY")
    if env:
        return env
    if os.path.exists(settings.SECRET_FILE):
        with open(settings.SECRET_FILE, encoding="utf-8") as fh:
            stored = fh.read().strip()
        if stored:
            return stored
    new_secret = "mt-" + secrets.token_hex(32)
    with open(settings.SECRET_FILE, "w", encoding="utf-8") as fh:
        fh.write(new_secret)
    logger.info("Generated new JWT secret at %s", settings.SECRET_FILE)
    return new_secret


SECRET_KEY = _load_or_create_secret()
ALGORITHM  = "HS256"

# ── Password hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    return _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    return _bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── JWT helpers ───────────────────────────────────────────────────────────────

def create_access_token(user_id: int, email: str, role: str = ROLE_USER) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.TOKEN_EXPIRE_DAYS)
    payload = {
        "sub":   str(user_id),
        "email": email,
        "role":  role,
        "exp":   expire,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Identity]:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return Identity(
            user_id=int(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", ROLE_USER),
        )
    except (JWTError, KeyError, ValueError) as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None


# ── FastAPI security scheme ───────────────────────────────────────────────────

_bearer = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Identity:
    """Dependency: raises HTTP 401 if the token is missing or invalid."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    identity = decode_token(credentials.credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
