"""
events.py — Models for the live activity feed.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from livemap.models.region import RegionDescriptor


class AccessEvent(BaseModel):
    """A single "new activity" occurrence attributed to a region."""

    model_config = ConfigDict(frozen=True)

    id: str                         # synthetic, unique per event
    region: RegionDescriptor
    timestamp: datetime             # timezone-aware UTC
    user_id: Optional[str] = None   # record that triggered the event
