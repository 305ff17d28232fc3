"""
aggregation.py — The per-region accumulator behind the live map.

One AggregationStore instance owns every RegionStat for a dashboard. It has
two write paths:

  replace(rows)        — authoritative full replace from a pre-aggregated
                         snapshot (or a full rescan). The only operation
                         allowed to make a total go down.
  apply_delta(...)     — incremental upsert for one region, optionally
                         highlighting it for `recency_seconds`.

HIGHLIGHT TIMERS
────────────────
Each highlighted region has at most one pending reset. A new highlight for
the same region cancels the pending reset and schedules a fresh one, so a
region under sustained activity stays lit until `recency_seconds` after its
last hit instead of flickering off after the first one.

Timers are created through a `scheduler(delay, callback)` callable that
returns an object with `.cancel()`. The default uses the running asyncio
loop's call_later; tests pass a fake to control time.

CONCURRENCY
───────────
Every method is synchronous and runs on the event loop thread, so a caller
never observes a half-applied update and no locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, NamedTuple, Optional, Protocol

from livemap.core.config import KNOWN_TRACKED_FIELDS
from livemap.models.region import RegionDescriptor, RegionStat

logger = logging.getLogger(__name__)

ALL_FIELDS = frozenset(KNOWN_TRACKED_FIELDS)
DEFAULT_RECENCY_SECONDS = 3.0


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    """Schedule *callback* on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class RegionRow(NamedTuple):
    """One row of a full replace."""

    region: RegionDescriptor
    users: int
    plays: int = 0
    purified: Optional[int] = None


class AggregationStore:
    """Mutable, keyed accumulator of per-region statistics."""

    def __init__(
        self,
        recency_seconds: float = DEFAULT_RECENCY_SECONDS,
        tracked_fields: Iterable[str] = ALL_FIELDS,
        scheduler: Scheduler = loop_scheduler,
    ) -> None:
        tracked = frozenset(tracked_fields)
        unknown = tracked - ALL_FIELDS
        if unknown:
            raise ValueError(f"Unknown tracked fields: {sorted(unknown)}")

        self.recency_seconds = recency_seconds
        self.tracked_fields = tracked
        self._scheduler = scheduler
        self._stats: dict[str, RegionStat] = {}
        self._timers: dict[str, Cancellable] = {}
        self._listeners: list[Callable[[], None]] = []
        self._closed = False

        self.version = 0
        self.last_applied_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._stats)

    def __contains__(self, key: object) -> bool:
        return key in self._stats

    def get(self, key: str) -> Optional[RegionStat]:
        stat = self._stats.get(key)
        return stat.model_copy() if stat is not None else None

    def stats(self) -> list[RegionStat]:
        """Copies of every RegionStat, in insertion order."""
        return [stat.model_copy() for stat in self._stats.values()]

    @property
    def total_users(self) -> int:
        return sum(stat.count for stat in self._stats.values())

    def has_pending_reset(self, key: str) -> bool:
        return key in self._timers

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Call *callback* (synchronously) after every mutation."""
        self._listeners.append(callback)

    def _touch(self) -> None:
        self.version += 1
        for callback in self._listeners:
            callback()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _tracked(self, field: str, value: Optional[int]) -> int:
        return (value or 0) if field in self.tracked_fields else 0

    def replace(self, rows: Iterable[RegionRow]) -> None:
        """
        Atomically replace every region with *rows*.

        Regions missing from *rows* are dropped and their pending highlight
        resets cancelled. Regions that survive keep a pending highlight.
        """
        self._ensure_open()
        new_stats: dict[str, RegionStat] = {}
        for row in rows:
            key = row.region.key
            if key in new_stats:
                raise ValueError(f"Duplicate region in snapshot: {key}")
            if row.users < 0 or row.plays < 0 or (row.purified or 0) < 0:
                raise ValueError(f"Negative totals for region {key}")
            new_stats[key] = RegionStat(
                region=row.region,
                count=self._tracked("users", row.users),
                play_count=self._tracked("plays", row.plays),
                purified=self._tracked("purified", row.purified),
                recent_hit=key in self._timers,
            )

        for key in list(self._timers):
            if key not in new_stats:
                self._timers.pop(key).cancel()

        self._stats = new_stats
        self.last_applied_at = datetime.now(tz=timezone.utc)
        self._touch()
        logger.debug("Store replaced: %d regions, %d users", len(new_stats), self.total_users)

    def apply_delta(
        self,
        region: RegionDescriptor,
        users: int = 0,
        plays: int = 0,
        purified: int = 0,
        mark_recent: bool = False,
    ) -> RegionStat:
        """
        Upsert the stat for *region* by adding the given deltas.

        Returns a copy of the updated stat.
        """
        self._ensure_open()
        if users < 0 or plays < 0 or purified < 0:
            raise ValueError("Deltas must be non-negative")

        stat = self._stats.get(region.key)
        if stat is None:
            stat = RegionStat(region=region)
            self._stats[region.key] = stat

        stat.count += self._tracked("users", users)
        stat.play_count += self._tracked("plays", plays)
        stat.purified += self._tracked("purified", purified)
        if mark_recent:
            stat.recent_hit = True
            self.schedule_recency_reset(region.key)

        self.last_applied_at = datetime.now(tz=timezone.utc)
        self._touch()
        return stat.model_copy()

    def schedule_recency_reset(self, key: str) -> None:
        """(Re)arm the highlight reset for *key*, superseding any pending one."""
        self._ensure_open()
        pending = self._timers.pop(key, None)
        if pending is not None:
            pending.cancel()
        self._timers[key] = self._scheduler(self.recency_seconds, lambda: self._expire(key))

    def _expire(self, key: str) -> None:
        self._timers.pop(key, None)
        if self._closed:
            return
        stat = self._stats.get(key)
        if stat is not None and stat.recent_hit:
            stat.recent_hit = False
            self._touch()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel every pending reset. The store stays readable."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._listeners.clear()
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("AggregationStore is closed")
