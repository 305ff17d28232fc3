"""
Tests for the /health and / endpoints.

All tests run without a live MongoDB or data source (DATA_SOURCE=none).
"""

from unittest.mock import AsyncMock, MagicMock, patch


async def test_health_returns_200(client):
    """Health endpoint must always return 200 if the API process is alive."""
    response = await client.get("/health")
    assert response.status_code == 200


async def test_health_response_schema(client):
    data = (await client.get("/health")).json()

    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["environment"] == "test"
    assert data["data_source"] == "none"
    assert data["source_connected"] is False
    assert data["database"] == "disconnected"


async def test_health_reports_source_status(client, dashboard):
    dashboard.mark_connected()
    data = (await client.get("/health")).json()
    assert data["source_connected"] is True


async def test_health_reports_connected_database(client):
    from livemap.core import database as db_module

    fake_client = MagicMock()
    fake_client.admin.command = AsyncMock(return_value={"ok": 1})
    with patch.object(db_module.db_client, "client", fake_client):
        data = (await client.get("/health")).json()

    assert data["database"] == "connected"


async def test_health_survives_failed_ping(client):
    from livemap.core import database as db_module

    fake_client = MagicMock()
    fake_client.admin.command = AsyncMock(side_effect=RuntimeError("no route to host"))
    with patch.object(db_module.db_client, "client", fake_client):
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "disconnected"


async def test_root_endpoint(client):
    response = await client.get("/")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "running"
    assert data["name"] == "LiveMap API"
    assert data["data_source"] == "none"


async def test_docs_available_in_test_env(client):
    """Docs are only disabled when ENVIRONMENT=production."""
    response = await client.get("/docs")
    assert response.status_code == 200


async def test_unknown_route_404(client):
    response = await client.get("/nope")
    assert response.status_code == 404
