"""
sources.py — Data sources that feed the aggregation engine.

Every source is an object with an async `run(dashboard)` loop that the
Dashboard starts as a task and cancels on shutdown.

  SnapshotPoller     poll      GET a pre-aggregated JSON document every
                               poll_interval_seconds → store.replace()
  CollectionWatcher  collection  read the whole MongoDB user collection,
                               re-read after every change-stream event
                               → detector.observe_population()
  InsertWatcher      inserts   seed from existing documents, then follow an
                               insert-only change stream
                               → detector.observe_record()
  DemoSource         demo      random users generated in-process
                               → detector.observe_record()

FAILURE POLICY
──────────────
A failed fetch or a broken change stream is reported through
dashboard.mark_disconnected() and leaves the aggregated state untouched.
The poller never retries on its own; the next tick is the recovery. The
watchers wait stream_retry_seconds and re-subscribe (that is the store's
own reconnect behaviour; replayed records are deduplicated downstream).
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

import httpx
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from livemap.core.config import Settings
from livemap.core.database import get_collection
from livemap.models.region import SnapshotDocument
from livemap.models.user_record import UserRecord
from livemap.services.aggregation import RegionRow
from livemap.services.regions import LANGUAGE_TO_REGION

if TYPE_CHECKING:
    from livemap.services.dashboard import Dashboard

logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """A data source could not deliver a usable payload this time."""


class DataSource:
    """Base class: subclasses implement run()."""

    name = "base"
    # Push sources report "last updated" as the time of the last applied
    # delta; poll sources report the timestamp of the fetched document.
    push_based = True
    needs_database = False

    async def run(self, dashboard: "Dashboard") -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


# ── Periodic snapshot poller ──────────────────────────────────────────────────

def parse_snapshot_document(data: Any) -> tuple[list[RegionRow], Optional[datetime]]:
    """
    Validate a dashboard document and convert it to store rows.

    Accepted layouts:
      {"lastUpdated": ..., "purificationByRegion": {"regions": [...]}}
      {"lastUpdated": ..., "rows": [...]}
      {"lastUpdated": ..., "regions": [...]}

    Raises SourceUnavailable for anything else.
    """
    if not isinstance(data, dict):
        raise SourceUnavailable("Malformed snapshot: expected a JSON object")

    raw_rows = None
    nested = data.get("purificationByRegion")
    if isinstance(nested, dict):
        raw_rows = nested.get("regions")
    if raw_rows is None:
        raw_rows = data.get("rows", data.get("regions"))
    if not isinstance(raw_rows, list):
        raise SourceUnavailable("Malformed snapshot: no region data found")

    try:
        document = SnapshotDocument.model_validate(
            {"lastUpdated": data.get("lastUpdated"), "rows": raw_rows}
        )
    except ValidationError as exc:
        raise SourceUnavailable(f"Malformed snapshot: {exc.error_count()} invalid fields") from exc

    rows = []
    seen: set[str] = set()
    for row in document.rows:
        if row.region in seen:
            raise SourceUnavailable(f"Malformed snapshot: duplicate region {row.region!r}")
        seen.add(row.region)
        rows.append(RegionRow(row.to_descriptor(), row.users, row.plays, row.purified))

    last_updated = document.last_updated
    if last_updated is not None and last_updated.tzinfo is None:
        last_updated = last_updated.replace(tzinfo=timezone.utc)
    return rows, last_updated


class SnapshotPoller(DataSource):
    """Polls the pre-aggregated dashboard JSON on a fixed interval."""

    name = "poll"
    push_based = False

    def __init__(
        self,
        url: str,
        interval_seconds: float = 300.0,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.interval_seconds = interval_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def fetch(self) -> tuple[list[RegionRow], Optional[datetime]]:
        try:
            response = await self._client.get(self.url)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"Snapshot fetch failed: {exc}") from exc

        if not response.is_success:
            raise SourceUnavailable(f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise SourceUnavailable("Malformed snapshot: body is not JSON") from exc
        return parse_snapshot_document(data)

    async def poll_once(self, dashboard: "Dashboard") -> bool:
        """Fetch and apply one snapshot. Returns False when the source is down."""
        try:
            rows, last_updated = await self.fetch()
        except SourceUnavailable as exc:
            logger.warning("Snapshot poll failed: %s", exc)
            dashboard.mark_disconnected(str(exc))
            return False

        dashboard.store.replace(rows)
        dashboard.mark_connected(last_updated or datetime.now(tz=timezone.utc))
        logger.info("Snapshot applied: %d regions", len(rows))
        return True

    async def run(self, dashboard: "Dashboard") -> None:
        while True:
            try:
                await self.poll_once(dashboard)
            except Exception as exc:
                # One bad tick must not end polling; the next tick retries.
                logger.exception("Snapshot poll crashed")
                dashboard.mark_disconnected(f"Snapshot poll crashed: {exc}")
            await asyncio.sleep(self.interval_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ── MongoDB change-stream watchers ────────────────────────────────────────────

CollectionGetter = Callable[[], Any]


def user_records_collection(collection_name: str) -> CollectionGetter:
    """Return a getter for the Motor collection (None while MongoDB is down)."""

    def _get():
        return get_collection(collection_name)

    return _get


async def read_population(collection) -> dict[str, UserRecord]:
    population: dict[str, UserRecord] = {}
    async for doc in collection.find({}):
        record = UserRecord.from_document(doc)
        population[record.id] = record
    return population


class _Watcher(DataSource):
    needs_database = True

    def __init__(self, collection: CollectionGetter, retry_seconds: float = 5.0) -> None:
        self._collection = collection
        self.retry_seconds = retry_seconds

    async def subscribe_once(self, dashboard: "Dashboard", collection) -> None:
        raise NotImplementedError

    async def run(self, dashboard: "Dashboard") -> None:
        while True:
            collection = self._collection()
            if collection is None:
                dashboard.mark_disconnected("Realtime store unavailable")
            else:
                try:
                    await self.subscribe_once(dashboard, collection)
                except PyMongoError as exc:
                    logger.warning("Change stream on %s failed: %s", self.name, exc)
                    dashboard.mark_disconnected(f"Realtime store error: {exc}")
                except Exception as exc:
                    logger.exception("Change stream on %s crashed", self.name)
                    dashboard.mark_disconnected(f"Realtime store error: {exc}")
            await asyncio.sleep(self.retry_seconds)


class CollectionWatcher(_Watcher):
    """Whole-collection subscription → snapshot-diff mode."""

    name = "collection"

    async def subscribe_once(self, dashboard: "Dashboard", collection) -> None:
        async with collection.watch() as stream:
            await self._sync(dashboard, collection)
            async for _change in stream:
                await self._sync(dashboard, collection)

    async def _sync(self, dashboard: "Dashboard", collection) -> None:
        population = await read_population(collection)
        dashboard.detector.observe_population(population)
        dashboard.mark_connected()


class InsertWatcher(_Watcher):
    """Newly-added-entries subscription → single-record mode."""

    name = "inserts"

    def __init__(self, collection: CollectionGetter, retry_seconds: float = 5.0) -> None:
        super().__init__(collection, retry_seconds)
        self._seeded = False

    async def subscribe_once(self, dashboard: "Dashboard", collection) -> None:
        # Open the stream before reading so inserts racing the read are not
        # lost; the detector's known-id set drops the overlap.
        pipeline = [{"$match": {"operationType": "insert"}}]
        async with collection.watch(pipeline) as stream:
            existing = await read_population(collection)
            if not self._seeded:
                # Users already present at startup are counted quietly.
                dashboard.detector.seed(existing.values())
                self._seeded = True
            else:
                # After a reconnect, users added while the stream was down
                # are new; replayed ones are dropped as already known.
                for record in existing.values():
                    dashboard.detector.observe_record(record)
            dashboard.mark_connected()
            async for change in stream:
                doc = change.get("fullDocument")
                if doc is None:
                    continue
                dashboard.detector.observe_record(UserRecord.from_document(doc))
                dashboard.mark_connected()


# ── Demo source ───────────────────────────────────────────────────────────────

class DemoSource(DataSource):
    """Generates plausible users so the map can run without any backend."""

    name = "demo"

    def __init__(
        self,
        interval_seconds: float = 2.0,
        rng: Optional[random.Random] = None,
        unknown_language_ratio: float = 0.05,
    ) -> None:
        self.interval_seconds = interval_seconds
        self.unknown_language_ratio = unknown_language_ratio
        self._rng = rng or random.Random()
        self._languages = sorted(LANGUAGE_TO_REGION)

    def make_record(self) -> UserRecord:
        rng = self._rng
        if rng.random() < self.unknown_language_ratio:
            language = "Esperanto"
        else:
            language = rng.choice(self._languages)
        results = {
            f"stage_{i:02d}": {
                "maxScore": rng.choice([0, rng.randint(100, 5000)]),
                "clearRate": rng.randint(0, 100),
            }
            for i in range(1, rng.randint(1, 5) + 1)
        }
        return UserRecord(id=f"demo_{uuid.uuid4().hex[:12]}", language=language, results=results)

    async def run(self, dashboard: "Dashboard") -> None:
        dashboard.mark_connected()
        while True:
            dashboard.detector.observe_record(self.make_record())
            await asyncio.sleep(self.interval_seconds * self._rng.uniform(0.5, 1.5))


# ── Factory ───────────────────────────────────────────────────────────────────

def build_source(cfg: Settings) -> Optional[DataSource]:
    """Instantiate the source named by cfg.data_source."""
    kind = cfg.data_source.lower()
    if kind == "poll":
        return SnapshotPoller(
            cfg.snapshot_url,
            interval_seconds=cfg.poll_interval_seconds,
            timeout_seconds=cfg.http_timeout_seconds,
        )
    if kind == "collection":
        return CollectionWatcher(
            user_records_collection(cfg.user_records_collection),
            retry_seconds=cfg.stream_retry_seconds,
        )
    if kind == "inserts":
        return InsertWatcher(
            user_records_collection(cfg.user_records_collection),
            retry_seconds=cfg.stream_retry_seconds,
        )
    if kind == "demo":
        return DemoSource(interval_seconds=cfg.demo_interval_seconds)
    if kind == "none":
        return None
    raise ValueError(f"Unknown data source: {cfg.data_source!r}")
