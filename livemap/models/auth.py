"""
auth.py — Pydantic schemas for the password gate.

LoginRequest  — what the login form sends
Token         — session token returned on success
SessionStatus — response of GET /auth/session
"""

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Payload for POST /auth/login."""
    password: str = Field(min_length=1, max_length=128)


class Token(BaseModel):
    """Response body for a successful login."""
    access_token: str
    token_type: str = "bearer"


class SessionStatus(BaseModel):
    authenticated: bool
