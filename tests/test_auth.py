"""
test_auth.py — Password gate, session tokens and login rate limiting.

Run:
    pytest tests/test_auth.py -v
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import TEST_PASSWORD
from livemap.core.security import (
    create_session_token,
    hash_password,
    is_valid_session,
    verify_password,
)


# ── Security helpers ──────────────────────────────────────────────────────────

class TestPasswordHashing:

    def test_hash_and_verify(self):
        hashed = hash_password("hunter2")
        assert hashed != "hunter2"
        assert verify_password("hunter2", hashed)
        assert not verify_password("hunter3", hashed)

    def test_configured_password_unlocks(self):
        assert verify_password(TEST_PASSWORD)
        assert not verify_password("wrong")

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("hunter2", "not-a-bcrypt-hash") is False


class TestSessionTokens:

    def test_round_trip(self):
        assert is_valid_session(create_session_token())

    def test_expired_token_rejected(self):
        assert not is_valid_session(create_session_token(timedelta(seconds=-1)))

    @pytest.mark.parametrize("token", [None, "", "abc.def.ghi"])
    def test_garbage_rejected(self, token):
        assert not is_valid_session(token)

    def test_foreign_signature_rejected(self):
        from jose import jwt

        forged = jwt.encode({"sub": "dashboard"}, "someone-else", algorithm="HS256")
        assert not is_valid_session(forged)


# ── Routes ────────────────────────────────────────────────────────────────────

class TestLogin:

    async def test_correct_password_returns_token(self, client):
        r = await client.post("/auth/login", json={"password": TEST_PASSWORD})
        assert r.status_code == 200

        data = r.json()
        assert data["token_type"] == "bearer"
        assert is_valid_session(data["access_token"])

    async def test_token_unlocks_dashboard(self, client):
        token = (await client.post("/auth/login", json={"password": TEST_PASSWORD})).json()["access_token"]
        r = await client.get("/api/v1/dashboard", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200

    async def test_wrong_password_401(self, client):
        r = await client.post("/auth/login", json={"password": "nope"})
        assert r.status_code == 401
        assert r.json()["detail"] == "Incorrect password"

    async def test_empty_password_422(self, client):
        r = await client.post("/auth/login", json={"password": ""})
        assert r.status_code == 422

    async def test_missing_body_422(self, client):
        r = await client.post("/auth/login")
        assert r.status_code == 422


class TestSession:

    async def test_authenticated(self, client, auth_headers):
        r = await client.get("/auth/session", headers=auth_headers)
        assert r.status_code == 200
        assert r.json() == {"authenticated": True}

    async def test_anonymous(self, client):
        r = await client.get("/auth/session")
        assert r.status_code == 200
        assert r.json() == {"authenticated": False}


class TestLoginRateLimit:

    def test_limiter_attached_to_app(self, app):
        from livemap.core.rate_limit import limiter

        assert app.state.limiter is limiter

    async def test_429_when_limit_exceeded(self, client):
        from livemap.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await client.post("/auth/login", json={"password": TEST_PASSWORD})

        assert r.status_code == 429
        assert "error" in r.json()


class TestAppSettings:
    """The Settings passed to create_app() drive auth and health, not the module default."""

    @pytest.fixture()
    def custom_cfg(self):
        from livemap.core.config import Settings

        return Settings(
            environment="staging",
            data_source="none",
            dashboard_password="staging-pass",
            jwt_secret="staging-secret",
        )

    @pytest.fixture()
    async def custom_client(self, custom_cfg):
        from httpx import ASGITransport, AsyncClient

        from livemap.main import create_app

        app = create_app(cfg=custom_cfg)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    async def test_login_uses_app_password(self, custom_client):
        assert (await custom_client.post("/auth/login", json={"password": TEST_PASSWORD})).status_code == 401
        r = await custom_client.post("/auth/login", json={"password": "staging-pass"})
        assert r.status_code == 200

    async def test_tokens_are_signed_with_app_secret(self, custom_client, custom_cfg):
        default_token = create_session_token()
        r = await custom_client.get("/auth/session", headers={"Authorization": f"Bearer {default_token}"})
        assert r.json() == {"authenticated": False}

        token = create_session_token(cfg=custom_cfg)
        r = await custom_client.get("/api/v1/dashboard", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200

    async def test_health_reports_app_environment(self, custom_client):
        data = (await custom_client.get("/health")).json()
        assert data["environment"] == "staging"

    def test_stream_checks_token_against_app_secret(self, custom_cfg):
        from fastapi.testclient import TestClient
        from starlette.websockets import WebSocketDisconnect

        from livemap.main import create_app

        client = TestClient(create_app(cfg=custom_cfg))
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/api/v1/dashboard/stream?token={create_session_token()}"):
                pass
        assert exc_info.value.code == 1008
