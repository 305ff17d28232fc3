"""
publisher.py — Read-only projections of the aggregation engine for the UI.

SnapshotPublisher
    Orders region stats for the map and the "Top Regions" table
    (play count descending, region key ascending on ties) and sums the
    totals. Materialisations are cached per store version, so any number of
    REST polls and WebSocket frames between two mutations share one sort.

EventFeed
    The capped, newest-first list of access events behind the live feed,
    plus the "events in the last minute" counter. Keeps only what those two
    views need: `capacity` events and the timestamps inside the window.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, NamedTuple, Optional

from livemap.models.events import AccessEvent
from livemap.models.region import RegionStat
from livemap.services.aggregation import AggregationStore

DEFAULT_FEED_CAPACITY = 20
DEFAULT_FEED_WINDOW_SECONDS = 60.0


class PublishedSnapshot(NamedTuple):
    regions: tuple[RegionStat, ...]
    total_users: int
    total_plays: int
    total_purified: int
    version: int


def ranking_key(stat: RegionStat) -> tuple[int, str]:
    return (-stat.play_count, stat.region.key)


class SnapshotPublisher:
    """Materialises an ordered, immutable view of an AggregationStore."""

    def __init__(self, store: AggregationStore, include_inactive_regions: bool = True) -> None:
        self.store = store
        self.include_inactive_regions = include_inactive_regions
        self._cached: Optional[PublishedSnapshot] = None

    def publish(self) -> PublishedSnapshot:
        cached = self._cached
        if cached is not None and cached.version == self.store.version:
            return cached

        stats = self.store.stats()
        ordered = sorted(stats, key=ranking_key)
        if not self.include_inactive_regions:
            ordered = [stat for stat in ordered if stat.count > 0]

        snapshot = PublishedSnapshot(
            regions=tuple(ordered),
            # Totals always cover every region, including hidden ones.
            total_users=sum(stat.count for stat in stats),
            total_plays=sum(stat.play_count for stat in stats),
            total_purified=sum(stat.purified for stat in stats),
            version=self.store.version,
        )
        self._cached = snapshot
        return snapshot


class EventFeed:
    """Bounded newest-first event list with a sliding-window counter."""

    def __init__(
        self,
        capacity: int = DEFAULT_FEED_CAPACITY,
        window_seconds: float = DEFAULT_FEED_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: deque[AccessEvent] = deque(maxlen=capacity)
        self._seen_at: deque[float] = deque()

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: AccessEvent) -> None:
        self._events.appendleft(event)
        self._seen_at.append(self._clock())
        self._prune()

    def recent(self, limit: Optional[int] = None) -> list[AccessEvent]:
        events = list(self._events)
        return events if limit is None else events[:limit]

    def count_in_window(self) -> int:
        self._prune()
        return len(self._seen_at)

    def _prune(self) -> None:
        cutoff = self._clock() - self.window_seconds
        while self._seen_at and self._seen_at[0] <= cutoff:
            self._seen_at.popleft()
