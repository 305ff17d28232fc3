"""
dashboard.py — Live map routes.

Routes:
  GET  /api/v1/dashboard          — full snapshot: regions + totals + feed + status
  GET  /api/v1/dashboard/regions  — ordered region stats only (lighter payload)
  GET  /api/v1/dashboard/events   — newest-first live feed
  WS   /api/v1/dashboard/stream   — snapshot frames pushed on every change

HOW THE DATA FLOWS
──────────────────
1. The front-end logs in (POST /auth/login) and keeps the session token.
2. It calls GET /api/v1/dashboard on page load (Bearer token).
3. It opens /api/v1/dashboard/stream?token=<token>; the server sends one
   frame immediately, then one after every engine change (debounced by
   stream_debounce_seconds), and a heartbeat frame every
   stream_heartbeat_seconds when nothing changes.

Every handler reads the Dashboard from app.state, created by create_app().

TESTING YOUR CHANGES
─────────────────────
  pytest tests/test_dashboard_routes.py -v

  # WebSocket test (install wscat: npm i -g wscat):
  wscat -c "ws://localhost:8000/api/v1/dashboard/stream?token=<token>"
"""

import asyncio
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect, status

from livemap.core.security import is_valid_session
from livemap.models.dashboard import DashboardSnapshot, StreamFrame
from livemap.models.events import AccessEvent
from livemap.models.region import RegionStat
from livemap.routes.auth import SessionRequired
from livemap.services.dashboard import Dashboard

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/dashboard",
    tags=["dashboard"],
)


def get_dashboard(request: Request) -> Dashboard:
    """FastAPI dependency — the Dashboard owned by this app instance."""
    return request.app.state.dashboard


DashboardDep = Annotated[Dashboard, Depends(get_dashboard)]


@router.get("", response_model=DashboardSnapshot, dependencies=[SessionRequired])
async def get_snapshot(
    dashboard: DashboardDep,
    events: int = Query(default=20, ge=0, le=100, description="Max feed entries to include"),
):
    """
    Return everything the map page renders.

    Response shape (DashboardSnapshot):
      regions             : RegionStat list, play count desc
      total_users         : sum of per-region user counts
      connected / error   : data-source status (stale data stays available)
      last_updated        : snapshot timestamp (poll) or last delta time (push)
      recent_events       : newest-first AccessEvent list
      events_last_window  : events seen within feed_window_seconds
    """
    return dashboard.snapshot(event_limit=events)


@router.get("/regions", response_model=list[RegionStat], dependencies=[SessionRequired])
async def get_regions(dashboard: DashboardDep):
    """Ordered region statistics without the feed."""
    return list(dashboard.publisher.publish().regions)


@router.get("/events", response_model=list[AccessEvent], dependencies=[SessionRequired])
async def get_events(
    dashboard: DashboardDep,
    limit: int = Query(default=20, ge=1, le=100),
):
    """Newest-first access events for the live feed."""
    return dashboard.feed.recent(limit)


# ── WebSocket live stream ─────────────────────────────────────────────────────

def build_frame(dashboard: Dashboard) -> str:
    """Serialise the current snapshot as one stream frame."""
    snapshot = dashboard.snapshot()
    return StreamFrame.model_validate(snapshot.model_dump()).model_dump_json()


@router.websocket("/stream")
async def dashboard_stream(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    """
    Push a snapshot frame on connect and after each change.

    Message format (JSON string): {"type": "snapshot", ...DashboardSnapshot}
    """
    cfg = websocket.app.state.settings
    if not is_valid_session(token, cfg):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    dashboard: Dashboard = websocket.app.state.dashboard
    await websocket.accept()
    try:
        while True:
            await websocket.send_text(build_frame(dashboard))
            changed = await dashboard.wait_for_change(timeout=cfg.stream_heartbeat_seconds)
            if changed:
                # Coalesce bursts (a population diff can touch many regions)
                await asyncio.sleep(cfg.stream_debounce_seconds)
    except WebSocketDisconnect:
        # Client closed the tab or navigated away
        logger.info("Dashboard WebSocket client disconnected")
    except Exception as exc:
        logger.warning("Dashboard WebSocket error: %s", exc)
