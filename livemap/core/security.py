"""
security.py — Password gate and session token utilities.

The dashboard is protected by one shared password. A successful check is
remembered as a signed session token (JWT) that the front-end keeps and
sends back as a Bearer header or, for the WebSocket, a ?token= parameter.

Uses:
  - bcrypt (direct, no passlib) for the password hash
  - python-jose for JWT creation / verification

Every helper takes the Settings to use (default: the module-level
settings); routes pass the one stored on app.state by create_app().
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from livemap.core.config import Settings, settings

SESSION_SUBJECT = "dashboard"


# ── Password hashing ──────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return bcrypt hash of *plain* password."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


@lru_cache(maxsize=8)
def _configured_hash(explicit_hash: str, plain: str) -> str:
    return explicit_hash or hash_password(plain)


def dashboard_password_hash(cfg: Settings = settings) -> str:
    """The bcrypt hash the gate checks against (computed once per config)."""
    return _configured_hash(cfg.dashboard_password_hash, cfg.dashboard_password)


def verify_password(plain: str, hashed: Optional[str] = None, cfg: Settings = settings) -> bool:
    """Return True if *plain* matches *hashed* (default: the dashboard hash)."""
    hashed = hashed or dashboard_password_hash(cfg)
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in configuration
        return False


# ── Session tokens ────────────────────────────────────────────────────────────

def create_session_token(expires_delta: Optional[timedelta] = None, cfg: Settings = settings) -> str:
    """
    Create a signed session token.

    Args:
        expires_delta: Custom TTL; defaults to cfg.jwt_expiry_hours.
    """
    delta = expires_delta or timedelta(hours=cfg.jwt_expiry_hours)
    expire = datetime.now(tz=timezone.utc) + delta
    payload = {"sub": SESSION_SUBJECT, "exp": expire}
    return jwt.encode(payload, cfg.jwt_secret, algorithm=cfg.jwt_algorithm)


def is_valid_session(token: Optional[str], cfg: Settings = settings) -> bool:
    """True when *token* is a non-expired session token signed by us."""
    if not token:
        return False
    try:
        payload = jwt.decode(
            token,
            cfg.jwt_secret,
            algorithms=[cfg.jwt_algorithm],
        )
    except JWTError:
        return False
    return payload.get("sub") == SESSION_SUBJECT
