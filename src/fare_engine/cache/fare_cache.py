"""Per-trip-kind, per-vehicle TTL cache of fare schedules.

Lookups resolve through a fixed ladder: a live entry, then a fresh fetch,
then the expired entry for the same key, then the hardcoded default for the
vehicle class. Fetch errors never escape a lookup; the source of the
returned schedule is reported on the FareLookup instead.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from ..core.clock import Clock, SystemClock
from ..core.exceptions import FareFetchError
from ..defaults import default_schedule
from ..events.bus import EventBus
from ..events.schemas import (
    FareCacheClearedEvent,
    FareCacheInvalidatedEvent,
    FareDataUpdatedEvent,
    FareEventType,
)
from ..fare_logging import log_fare_context
from ..metrics import fare_cache_lookups
from ..schedules import CacheEntry, FareSource, Schedule, TripKind
from ..vehicles import normalize_vehicle_id
from .coordinator import RequestCoordinator

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

CacheKey = tuple[TripKind, str]


class ScheduleFetcher(Protocol):
    async def fetch_schedule(self, trip_kind: TripKind, vehicle_id: str) -> Schedule: ...

    async def fetch_all(self, trip_kind: TripKind) -> dict[str, Schedule]: ...


@dataclass(frozen=True)
class FareLookup:
    schedule: Schedule
    source: FareSource
    fetched_at: float | None = None

    @property
    def is_estimate(self) -> bool:
        return self.source.is_estimate


class FareCache:
    def __init__(
        self,
        fetcher: ScheduleFetcher,
        coordinator: RequestCoordinator,
        bus: EventBus,
        clock: Clock | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        bulk_ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        self._fetcher = fetcher
        self._coordinator = coordinator
        self._bus = bus
        self._clock = clock or SystemClock()
        self.ttl_seconds = ttl_seconds
        self.bulk_ttl_seconds = bulk_ttl_seconds

        self._entries: dict[TripKind, dict[str, CacheEntry]] = {kind: {} for kind in TripKind}
        self._generation: dict[TripKind, int] = {kind: 0 for kind in TripKind}
        self._last_bulk_fetch: dict[TripKind, float] = {}
        self._inflight: dict[CacheKey, asyncio.Task[FareLookup]] = {}
        self._bulk_inflight: dict[TripKind, asyncio.Task[bool]] = {}

    def peek(self, trip_kind: TripKind, vehicle_id: str) -> CacheEntry | None:
        """Current entry for a key, live or expired, without any I/O."""
        return self._entries[trip_kind].get(normalize_vehicle_id(vehicle_id))

    def last_bulk_fetch(self, trip_kind: TripKind) -> float | None:
        return self._last_bulk_fetch.get(trip_kind)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    async def get(
        self, trip_kind: TripKind, vehicle_id: str, force_refresh: bool = False
    ) -> FareLookup:
        """Resolve the schedule for a vehicle through the fallback ladder."""
        vehicle = normalize_vehicle_id(vehicle_id)
        key = (trip_kind, vehicle)

        with log_fare_context(trip_kind.value, vehicle):
            entry = self._entries[trip_kind].get(vehicle)
            if not force_refresh and entry is not None and entry.is_live(self._clock.now()):
                logger.debug(f"Cache hit for {trip_kind.value}/{vehicle}")
                fare_cache_lookups.labels(trip_kind=trip_kind.value, source="cached").inc()
                return FareLookup(entry.data, FareSource.CACHED, entry.fetched_at)

            task = self._inflight.get(key)
            if task is None:
                logger.debug(f"Cache miss for {trip_kind.value}/{vehicle}")
                task = asyncio.ensure_future(self._load(trip_kind, vehicle, force_refresh))
                self._inflight[key] = task
                task.add_done_callback(lambda t: self._forget(key, t))
            else:
                logger.debug(f"Joining in-flight fetch for {trip_kind.value}/{vehicle}")

            lookup = await asyncio.shield(task)
            fare_cache_lookups.labels(
                trip_kind=trip_kind.value, source=lookup.source.value
            ).inc()
            return lookup

    def _forget(self, key: CacheKey, task: asyncio.Task[FareLookup]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _load(self, trip_kind: TripKind, vehicle: str, force_refresh: bool) -> FareLookup:
        entry_at_request = self._entries[trip_kind].get(vehicle)

        async def fetch() -> FareLookup:
            # Another operation may have filled the key while this one was queued
            entry = self._entries[trip_kind].get(vehicle)
            if entry is not None and entry.is_live(self._clock.now()):
                if not force_refresh or entry is not entry_at_request:
                    return FareLookup(entry.data, FareSource.CACHED, entry.fetched_at)

            generation = self._generation[trip_kind]
            try:
                schedule = await self._fetcher.fetch_schedule(trip_kind, vehicle)
            except FareFetchError as e:
                return self._fallback(trip_kind, vehicle, e)

            if generation != self._generation[trip_kind]:
                logger.info(
                    f"{trip_kind.value} cache invalidated during fetch for {vehicle}, "
                    "result not stored"
                )
                return FareLookup(schedule, FareSource.FRESH, self._clock.now())
            stored = self._store(trip_kind, vehicle, schedule)
            return FareLookup(stored.data, FareSource.FRESH, stored.fetched_at)

        with log_fare_context(trip_kind.value, vehicle):
            return await self._coordinator.run_exclusive((trip_kind, vehicle), fetch)

    def _fallback(self, trip_kind: TripKind, vehicle: str, error: Exception) -> FareLookup:
        entry = self._entries[trip_kind].get(vehicle)
        if entry is not None:
            logger.warning(
                f"Fetch failed for {trip_kind.value}/{vehicle}, using stale entry "
                f"from {entry.fetched_at:.0f}: {error}"
            )
            return FareLookup(entry.data, FareSource.STALE, entry.fetched_at)

        logger.warning(
            f"Fetch failed for {trip_kind.value}/{vehicle} with nothing cached, "
            f"using default schedule: {error}"
        )
        return FareLookup(default_schedule(trip_kind, vehicle), FareSource.DEFAULT)

    def _store(self, trip_kind: TripKind, vehicle: str, schedule: Schedule) -> CacheEntry:
        now = self._clock.now()
        if schedule.vehicle_id != vehicle:
            schedule = schedule.model_copy(update={"vehicle_id": vehicle})
        entry = CacheEntry(data=schedule, fetched_at=now, expires_at=now + self.ttl_seconds)
        self._entries[trip_kind][vehicle] = entry
        return entry

    def invalidate(self, trip_kind: TripKind, vehicle_id: str | None = None) -> None:
        """Drop one vehicle's entry, or every entry of the trip kind."""
        if vehicle_id is not None:
            vehicle: str | None = normalize_vehicle_id(vehicle_id)
            self._entries[trip_kind].pop(vehicle, None)
        else:
            vehicle = None
            self._entries[trip_kind].clear()
            self._last_bulk_fetch.pop(trip_kind, None)
        self._generation[trip_kind] += 1

        logger.info(f"Invalidated {trip_kind.value} fares for {vehicle or 'all vehicles'}")
        self._bus.publish(
            FareEventType.FARE_CACHE_INVALIDATED,
            FareCacheInvalidatedEvent(
                timestamp=self._clock.now(), trip_kind=trip_kind, vehicle_id=vehicle
            ),
        )

    def clear_all(self) -> None:
        """Drop every entry and every bulk fetch timestamp."""
        for kind in TripKind:
            self._entries[kind].clear()
            self._generation[kind] += 1
        self._last_bulk_fetch.clear()

        logger.info("Cleared all fare caches")
        self._bus.publish(
            FareEventType.FARE_CACHE_CLEARED, FareCacheClearedEvent(timestamp=self._clock.now())
        )

    async def refresh_all(self, trip_kind: TripKind, force: bool = False) -> bool:
        """Replace every schedule of a trip kind from the bulk list endpoint.

        Returns False without any I/O when the last bulk fetch is younger than
        bulk_ttl_seconds, and False when the fetch fails (existing entries are
        kept). Concurrent calls for one trip kind share a single fetch.
        """
        last = self._last_bulk_fetch.get(trip_kind)
        if not force and last is not None and self._clock.now() - last < self.bulk_ttl_seconds:
            logger.debug(f"Bulk {trip_kind.value} fares still fresh, skipping sync")
            return False

        task = self._bulk_inflight.get(trip_kind)
        if task is None:
            task = asyncio.ensure_future(self._load_all(trip_kind, force))
            self._bulk_inflight[trip_kind] = task
            task.add_done_callback(lambda t: self._forget_bulk(trip_kind, t))
        return await asyncio.shield(task)

    def _forget_bulk(self, trip_kind: TripKind, task: asyncio.Task[bool]) -> None:
        if self._bulk_inflight.get(trip_kind) is task:
            del self._bulk_inflight[trip_kind]

    async def _load_all(self, trip_kind: TripKind, force: bool) -> bool:
        last_at_request = self._last_bulk_fetch.get(trip_kind)

        async def fetch() -> bool:
            last = self._last_bulk_fetch.get(trip_kind)
            if not force and last is not None and last != last_at_request:
                return True

            generation = self._generation[trip_kind]
            try:
                schedules = await self._fetcher.fetch_all(trip_kind)
            except FareFetchError as e:
                logger.warning(f"Bulk {trip_kind.value} sync failed, keeping cached fares: {e}")
                return False

            if generation != self._generation[trip_kind]:
                logger.info(f"{trip_kind.value} cache invalidated during bulk sync, discarded")
                return False

            for vehicle, schedule in schedules.items():
                self._store(trip_kind, vehicle, schedule)
            now = self._clock.now()
            self._last_bulk_fetch[trip_kind] = now

            logger.info(f"Synced {len(schedules)} {trip_kind.value} schedules")
            self._bus.publish(
                FareEventType.FARE_DATA_UPDATED,
                FareDataUpdatedEvent(
                    timestamp=now, trip_kind=trip_kind, vehicle_ids=sorted(schedules)
                ),
            )
            return True

        return await self._coordinator.run_exclusive(("bulk", trip_kind), fetch)
