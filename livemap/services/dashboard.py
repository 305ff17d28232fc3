"""
dashboard.py — Composition root of the aggregation engine.

A Dashboard owns one of everything:

    source ──► ChangeDetector ──► AggregationStore ──► SnapshotPublisher
                     │                                        │
                     └──────────► EventFeed ◄─────────────────┘ (read by snapshot())

plus the connection status the sources report. create_app() builds one per
application and stores it on app.state.dashboard; nothing here is global,
so tests can build as many independent dashboards as they like.

LIFECYCLE
─────────
    dashboard = Dashboard.from_settings(settings)
    await dashboard.start()     # launches the source task (if any)
    ...
    await dashboard.close()     # cancels the task, the timers and the HTTP client
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from livemap.core.config import Settings
from livemap.models.dashboard import DashboardSnapshot
from livemap.services.aggregation import AggregationStore, Scheduler, loop_scheduler
from livemap.services.change_detector import ChangeDetector
from livemap.services.publisher import EventFeed, SnapshotPublisher
from livemap.services.sources import DataSource, build_source

logger = logging.getLogger(__name__)


class Dashboard:
    def __init__(
        self,
        store: AggregationStore,
        detector: ChangeDetector,
        publisher: SnapshotPublisher,
        feed: EventFeed,
        source: Optional[DataSource] = None,
    ) -> None:
        self.store = store
        self.detector = detector
        self.publisher = publisher
        self.feed = feed
        self.source = source

        self.connected = False
        self.error: Optional[str] = None
        self._fetched_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._changed = asyncio.Event()

        store.add_listener(self._notify)

    @classmethod
    def from_settings(
        cls,
        cfg: Settings,
        source: Optional[DataSource] = None,
        scheduler: Scheduler = loop_scheduler,
    ) -> "Dashboard":
        """Wire a dashboard from configuration (source defaults to cfg.data_source)."""
        store = AggregationStore(
            recency_seconds=cfg.recency_seconds,
            tracked_fields=cfg.tracked_fields,
            scheduler=scheduler,
        )
        feed = EventFeed(capacity=cfg.feed_capacity, window_seconds=cfg.feed_window_seconds)
        detector = ChangeDetector(store, unit_value=cfg.score_unit_value, on_event=feed.append)
        publisher = SnapshotPublisher(store, include_inactive_regions=cfg.include_inactive_regions)
        if source is None:
            source = build_source(cfg)
        return cls(store, detector, publisher, feed, source)

    @property
    def data_source(self) -> str:
        return self.source.name if self.source is not None else "none"

    # ── Connection status (called by sources) ─────────────────────────────────

    def mark_connected(self, last_updated: Optional[datetime] = None) -> None:
        was_connected = self.connected
        self.connected = True
        self.error = None
        if last_updated is not None:
            self._fetched_at = last_updated
        if not was_connected:
            logger.info("Data source %s connected", self.data_source)
            self._notify()

    def mark_disconnected(self, message: str) -> None:
        changed = self.connected or self.error != message
        self.connected = False
        self.error = message
        if changed:
            logger.warning("Data source %s disconnected: %s", self.data_source, message)
            self._notify()

    @property
    def last_updated(self) -> Optional[datetime]:
        if self.source is not None and not self.source.push_based:
            return self._fetched_at
        return self.store.last_applied_at

    # ── Reads ─────────────────────────────────────────────────────────────────

    def snapshot(self, event_limit: Optional[int] = None) -> DashboardSnapshot:
        published = self.publisher.publish()
        return DashboardSnapshot(
            regions=list(published.regions),
            total_users=published.total_users,
            total_plays=published.total_plays,
            total_purified=published.total_purified,
            connected=self.connected,
            error=self.error,
            last_updated=self.last_updated,
            recent_events=self.feed.recent(event_limit),
            events_last_window=self.feed.count_in_window(),
            excluded_users=self.detector.excluded_users,
            data_source=self.data_source,
            version=published.version,
        )

    async def wait_for_change(self, timeout: Optional[float] = None) -> bool:
        """Block until the next mutation or status change. False on timeout."""
        event = self._changed
        try:
            await asyncio.wait_for(event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _notify(self) -> None:
        # Wake every current waiter, then arm a fresh event for the next round.
        self._changed.set()
        self._changed = asyncio.Event()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.source is None:
            logger.info("No data source configured; dashboard stays empty")
            return
        if self._task is not None:
            return
        logger.info("Starting data source: %s", self.data_source)
        self._task = asyncio.create_task(self._run_source(), name=f"livemap-source-{self.data_source}")

    async def _run_source(self) -> None:
        try:
            await self.source.run(self)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Data source %s crashed", self.data_source)
            self.mark_disconnected(f"Data source crashed: {exc}")

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.source is not None:
            await self.source.aclose()
        self.store.close()
        logger.info("Dashboard closed")
