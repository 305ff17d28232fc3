"""
dashboard.py — Response models consumed by the map front-end.

DashboardSnapshot is what GET /api/v1/dashboard returns and what every
WebSocket frame carries (with an extra "type" discriminator).
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from livemap.models.events import AccessEvent
from livemap.models.region import RegionStat


class DashboardSnapshot(BaseModel):
    """Everything the map, stats panel and live feed need in one payload."""

    regions: list[RegionStat]        # ordered: play count desc, key asc
    total_users: int                 # always == sum(r.count for all regions)
    total_plays: int
    total_purified: int
    connected: bool
    error: Optional[str] = None
    last_updated: Optional[datetime] = None
    recent_events: list[AccessEvent]  # newest first
    events_last_window: int           # events within feed_window_seconds
    excluded_users: int               # users whose language has no region
    data_source: str
    version: int                      # store mutation counter


class StreamFrame(DashboardSnapshot):
    """Single frame pushed over the WebSocket stream."""

    type: Literal["snapshot"] = "snapshot"
