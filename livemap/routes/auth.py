"""
auth.py — Password gate for the dashboard.

Routes:
  POST /auth/login    — exchange the dashboard password for a session token
  GET  /auth/session  — report whether the presented token is still valid

There are no user accounts: one shared password unlocks the dashboard and
the resulting token is the "authenticated" session flag the front-end keeps.
Logging out is dropping the token client-side.

All errors use HTTPException so FastAPI serialises them as:
  { "detail": "..." }
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from livemap.core.config import Settings
from livemap.core.rate_limit import LOGIN_RATE_LIMIT, limiter
from livemap.core.security import create_session_token, is_valid_session, verify_password
from livemap.models.auth import LoginRequest, SessionStatus, Token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


def get_settings(request: Request) -> Settings:
    """FastAPI dependency: the Settings this app was built with."""
    return request.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_settings)]


async def require_session(credentials: CredDep, cfg: SettingsDep) -> None:
    """
    FastAPI dependency — rejects requests without a valid session token.

    Raises 401 if the token is missing, expired, or not signed by us.
    """
    token = credentials.credentials if credentials else None
    if not is_valid_session(token, cfg):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Re-export so other routes can depend on it
SessionRequired = Depends(require_session)


@router.post("/login", response_model=Token)
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(request: Request, payload: LoginRequest, cfg: SettingsDep):
    """Check the dashboard password and return a session token."""
    if not verify_password(payload.password, cfg=cfg):
        logger.info("Rejected dashboard login from %s", request.client.host if request.client else "?")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Token(access_token=create_session_token(cfg=cfg))


@router.get("/session", response_model=SessionStatus)
async def session(credentials: CredDep, cfg: SettingsDep):
    """Return whether the presented token unlocks the dashboard."""
    token = credentials.credentials if credentials else None
    return SessionStatus(authenticated=is_valid_session(token, cfg))
