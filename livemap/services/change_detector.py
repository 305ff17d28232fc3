"""
change_detector.py — Turn raw user-record traffic into access events.

Two data-source shapes, one output:

  Snapshot-diff mode   observe_population(population)
      The source hands us the whole collection on every change. We compare
      it with the previous population: ids that are new, or whose results
      changed by value, become access events. Totals are rebuilt from a full
      rescan of the new population and written with store.replace(), so a
      user whose results grow twice is never counted twice. A region whose
      users all left stays in the store with zero totals.

  Single-record mode   seed(records) + observe_record(record)
      The source hands us one newly-added record at a time. A known-id set
      that only ever grows guarantees each user is counted once, even when
      the source replays records after a reconnect. Totals accumulate by
      delta (users=1 plus the record's score contribution).

Both paths end in _emit(), which highlights the region in the store and
hands the AccessEvent to the on_event callback (the dashboard's live feed).

Users whose language does not resolve to a region are excluded from every
total and only show up in `excluded_users`.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Mapping, Optional

from livemap.models.events import AccessEvent
from livemap.models.region import RegionDescriptor
from livemap.models.user_record import UserRecord
from livemap.services.aggregation import AggregationStore, RegionRow
from livemap.services.regions import resolve
from livemap.services.scoring import DEFAULT_UNIT_VALUE, extract_contribution

logger = logging.getLogger(__name__)

Population = Mapping[str, UserRecord]


def changed_records(previous: Population, current: Population) -> Iterator[UserRecord]:
    """
    Lazily yield records of *current* that are new or whose results differ.

    Records that disappeared from *current* are not reported.
    """
    for record_id, record in current.items():
        before = previous.get(record_id)
        if before is None or before.results != record.results:
            yield record


class ChangeDetector:
    """Feeds an AggregationStore from either population snapshots or single records."""

    def __init__(
        self,
        store: AggregationStore,
        unit_value: int = DEFAULT_UNIT_VALUE,
        on_event: Optional[Callable[[AccessEvent], None]] = None,
    ) -> None:
        self.store = store
        self.unit_value = unit_value
        self._on_event = on_event
        self._known_ids: set[str] = set()
        self._previous: Optional[dict[str, UserRecord]] = None
        # Regions ever attributed in snapshot-diff mode; kept at zero once empty.
        self._seen_regions: dict[str, RegionDescriptor] = {}
        self.excluded_users = 0

    @property
    def known_ids(self) -> frozenset[str]:
        return frozenset(self._known_ids)

    # ── Snapshot-diff mode ────────────────────────────────────────────────────

    def observe_population(self, population: Population) -> list[AccessEvent]:
        """
        Apply a full population snapshot and return the events it produced.

        The first population seen is a baseline: totals are built but no
        events are emitted for users that were already there.
        """
        current = dict(population)
        self._rebuild_totals(current.values())

        if self._previous is None:
            self._previous = current
            logger.info("Population baseline: %d users", len(current))
            return []

        events = []
        for record in changed_records(self._previous, current):
            region = resolve(record.language)
            if region is None:
                continue
            # Totals already include this record; only highlight and report.
            events.append(self._emit(record, region))
        self._previous = current
        if events:
            logger.debug("Population diff produced %d events", len(events))
        return events

    def _rebuild_totals(self, records: Iterable[UserRecord]) -> None:
        users: dict[str, int] = defaultdict(int)
        plays: dict[str, int] = defaultdict(int)
        purified: dict[str, int] = defaultdict(int)
        excluded = 0

        for record in records:
            region = resolve(record.language)
            if region is None:
                excluded += 1
                continue
            contribution = extract_contribution(record.results, self.unit_value)
            self._seen_regions.setdefault(region.key, region)
            users[region.key] += 1
            plays[region.key] += contribution.plays
            purified[region.key] += contribution.purified

        self.excluded_users = excluded
        self.store.replace(
            RegionRow(region, users[key], plays[key], purified[key])
            for key, region in self._seen_regions.items()
        )

    # ── Single-record mode ────────────────────────────────────────────────────

    def seed(self, records: Iterable[UserRecord]) -> int:
        """
        Count the source's pre-existing records without emitting events.

        Returns how many previously unknown records were added.
        """
        added = 0
        for record in records:
            if record.id in self._known_ids:
                continue
            self._known_ids.add(record.id)
            added += 1
            region = resolve(record.language)
            if region is None:
                self.excluded_users += 1
                continue
            contribution = extract_contribution(record.results, self.unit_value)
            self.store.apply_delta(
                region,
                users=1,
                plays=contribution.plays,
                purified=contribution.purified,
            )
        logger.info("Seeded %d existing users (%d known)", added, len(self._known_ids))
        return added

    def observe_record(self, record: UserRecord) -> Optional[AccessEvent]:
        """
        Count a newly added record once and return its event.

        Returns None for re-delivered ids and for unresolvable languages.
        """
        if record.id in self._known_ids:
            logger.debug("Ignoring re-delivered user %s", record.id)
            return None
        self._known_ids.add(record.id)

        region = resolve(record.language)
        if region is None:
            self.excluded_users += 1
            logger.debug("User %s has unmapped language %r", record.id, record.language)
            return None

        contribution = extract_contribution(record.results, self.unit_value)
        return self._emit(
            record,
            region,
            users=1,
            plays=contribution.plays,
            purified=contribution.purified,
        )

    # ── Shared emit path ──────────────────────────────────────────────────────

    def _emit(
        self,
        record: UserRecord,
        region: RegionDescriptor,
        users: int = 0,
        plays: int = 0,
        purified: int = 0,
    ) -> AccessEvent:
        self.store.apply_delta(
            region,
            users=users,
            plays=plays,
            purified=purified,
            mark_recent=True,
        )
        event = AccessEvent(
            id=uuid.uuid4().hex,
            region=region,
            timestamp=datetime.now(tz=timezone.utc),
            user_id=record.id,
        )
        if self._on_event is not None:
            self._on_event(event)
        return event
