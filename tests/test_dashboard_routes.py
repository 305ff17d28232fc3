"""
test_dashboard_routes.py — REST snapshot endpoints and the WebSocket gate.

The engine is driven directly through the `dashboard` fixture, which is the
same instance the app under test serves.
"""

import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import make_record
from livemap.routes.dashboard import build_frame

BASE = "/api/v1/dashboard"


@pytest.fixture()
def populated(dashboard):
    detector = dashboard.detector
    detector.observe_record(make_record("u1", "Japanese", r1=(1000, 50)))
    detector.observe_record(make_record("u2", "English", r1=(500, 100), r2=(300, 100)))
    detector.observe_record(make_record("u3", "English"))
    detector.observe_record(make_record("u4", "Klingon"))
    return dashboard


class TestAuthRequired:

    @pytest.mark.parametrize("path", ["", "/regions", "/events"])
    async def test_rejects_missing_token(self, client, path):
        r = await client.get(BASE + path)
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid or expired session"

    async def test_rejects_forged_token(self, client):
        r = await client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401


class TestSnapshotEndpoint:

    async def test_shape(self, client, auth_headers, populated):
        r = await client.get(BASE, headers=auth_headers)
        assert r.status_code == 200

        data = r.json()
        for key in (
            "regions", "total_users", "total_plays", "total_purified", "connected",
            "error", "last_updated", "recent_events", "events_last_window",
            "excluded_users", "data_source", "version",
        ):
            assert key in data

    async def test_totals_and_ordering(self, client, auth_headers, populated):
        data = (await client.get(BASE, headers=auth_headers)).json()

        assert data["total_users"] == 3
        assert data["total_users"] == sum(r["count"] for r in data["regions"])
        assert data["total_plays"] == 3
        assert data["total_purified"] == 5 + 5 + 3
        assert data["excluded_users"] == 1
        assert [r["region"]["key"] for r in data["regions"]] == ["USA", "Japan"]

        usa = data["regions"][0]
        assert usa["region"]["display_name"] == "アメリカ"
        assert usa["count"] == 2
        assert usa["recent_hit"] is True

    async def test_feed_is_newest_first(self, client, auth_headers, populated):
        data = (await client.get(BASE, headers=auth_headers)).json()
        assert [e["user_id"] for e in data["recent_events"]] == ["u3", "u2", "u1"]
        assert data["events_last_window"] == 3

    async def test_events_query_param(self, client, auth_headers, populated):
        data = (await client.get(BASE, params={"events": 1}, headers=auth_headers)).json()
        assert len(data["recent_events"]) == 1

    async def test_events_query_param_validated(self, client, auth_headers):
        r = await client.get(BASE, params={"events": -1}, headers=auth_headers)
        assert r.status_code == 422

    async def test_stale_state_survives_disconnect(self, client, auth_headers, populated):
        populated.mark_disconnected("HTTP 503")

        data = (await client.get(BASE, headers=auth_headers)).json()

        assert data["connected"] is False
        assert data["error"] == "HTTP 503"
        assert data["total_users"] == 3


class TestRegionsAndEvents:

    async def test_regions(self, client, auth_headers, populated):
        r = await client.get(f"{BASE}/regions", headers=auth_headers)
        assert r.status_code == 200
        assert [s["region"]["key"] for s in r.json()] == ["USA", "Japan"]

    async def test_regions_empty(self, client, auth_headers):
        r = await client.get(f"{BASE}/regions", headers=auth_headers)
        assert r.json() == []

    async def test_events_limit(self, client, auth_headers, populated):
        r = await client.get(f"{BASE}/events", params={"limit": 2}, headers=auth_headers)
        assert r.status_code == 200
        events = r.json()
        assert [e["user_id"] for e in events] == ["u3", "u2"]
        assert events[0]["region"]["key"] == "USA"

    async def test_events_limit_validated(self, client, auth_headers):
        r = await client.get(f"{BASE}/events", params={"limit": 0}, headers=auth_headers)
        assert r.status_code == 422


class TestStream:

    def test_rejects_missing_token(self, app):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"{BASE}/stream"):
                pass
        assert exc_info.value.code == 1008

    def test_rejects_invalid_token(self, app):
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"{BASE}/stream?token=garbage"):
                pass

    def test_frame_is_a_tagged_snapshot(self, populated):
        frame = json.loads(build_frame(populated))

        assert frame["type"] == "snapshot"
        assert frame["total_users"] == 3
        assert frame["regions"][0]["region"]["key"] == "USA"
