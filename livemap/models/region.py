"""
region.py — Pydantic models for regions and their aggregated statistics.

RegionDescriptor — immutable geographic bucket (identity = key)
RegionStat       — running totals for one region, owned by the AggregationStore
SnapshotRow      — one row of the external pre-aggregated dashboard document
SnapshotDocument — the whole document (rows + lastUpdated)

SnapshotRow accepts the field names used by the published dashboard JSON:

  {
    "region": "Japan",
    "regionJa": "日本",            ← also accepted as "regionDisplayName"
    "lat": 36.2, "lng": 138.25,
    "users": 120,
    "plays": 480,
    "purified": 3100               ← optional
  }
"""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RegionDescriptor(BaseModel):
    """A canonical geographic bucket."""

    model_config = ConfigDict(frozen=True)

    key: str            # canonical English name, e.g. "Japan"
    display_name: str   # localised label, e.g. "日本"
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class RegionStat(BaseModel):
    """Aggregated statistics for one region."""

    region: RegionDescriptor
    count: int = Field(default=0, ge=0)        # users attributed to the region
    play_count: int = Field(default=0, ge=0)   # scored plays
    purified: int = Field(default=0, ge=0)     # derived purified units
    recent_hit: bool = False                   # transient highlight flag


class SnapshotRow(BaseModel):
    """A precomputed per-region row from the periodic snapshot endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    region: str = Field(min_length=1)
    display_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("regionDisplayName", "regionJa", "display_name"),
    )
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    users: int = Field(ge=0)
    plays: int = Field(default=0, ge=0)
    purified: Optional[int] = Field(default=None, ge=0)

    def to_descriptor(self) -> RegionDescriptor:
        return RegionDescriptor(
            key=self.region,
            display_name=self.display_name or self.region,
            lat=self.lat,
            lng=self.lng,
        )


class SnapshotDocument(BaseModel):
    """The periodic pre-aggregated dashboard document."""

    last_updated: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("lastUpdated", "last_updated"),
    )
    rows: list[SnapshotRow]
