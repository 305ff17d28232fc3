"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - Front-end to check API connectivity

The API is healthy (HTTP 200) whenever the process is alive. The body says
whether the data source is currently delivering and whether MongoDB is
reachable, so callers can tell "API down" from "source down".
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from livemap import __version__
from livemap.core import database as db_module

router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    environment: str
    data_source: str
    source_connected: bool
    database: str  # "connected" | "disconnected"


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(request: Request) -> HealthResponse:
    """Liveness plus data-source and database status."""
    # Module reference so tests can patch db_module.db_client
    db_status = "connected" if await db_module.ping() else "disconnected"

    dashboard = request.app.state.dashboard
    return HealthResponse(
        status="ok",
        version=__version__,
        environment=request.app.state.settings.environment,
        data_source=dashboard.data_source,
        source_connected=dashboard.connected,
        database=db_status,
    )
