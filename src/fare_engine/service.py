"""Quote orchestration on top of the fare cache."""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from .cache.fare_cache import FareCache, FareLookup
from .core.clock import Clock, SystemClock
from .events.bus import EventBus
from .events.schemas import (
    FARES_UPDATED_EVENTS,
    FareDataUpdatedEvent,
    FareEventType,
    FaresUpdatedEvent,
)
from .fare import FareQuote, TripParams, calculate_fare
from .persistence.mirror import SettledFareMirror
from .schedules import Schedule, TripKind
from .vehicles import normalize_vehicle_id

logger = logging.getLogger(__name__)


class ScheduleUpdater(Protocol):
    async def update_schedule(
        self, trip_kind: TripKind, vehicle_id: str, schedule: Schedule
    ) -> dict[str, Any]: ...


class FareService:
    """Quotes trips from cached schedules and applies admin schedule updates."""

    def __init__(
        self,
        cache: FareCache,
        updater: ScheduleUpdater,
        bus: EventBus,
        clock: Clock | None = None,
        mirror: SettledFareMirror | None = None,
    ):
        self.cache = cache
        self._updater = updater
        self._bus = bus
        self._clock = clock or SystemClock()
        self._mirror = mirror

    async def get_schedule(
        self, trip_kind: TripKind, vehicle_id: str, force_refresh: bool = False
    ) -> FareLookup:
        return await self.cache.get(trip_kind, vehicle_id, force_refresh)

    async def quote(
        self, vehicle_id: str, trip: TripParams, force_refresh: bool = False
    ) -> FareQuote:
        """Price one trip for one vehicle.

        The quote carries the source of the schedule it was computed from, so
        a caller can mark stale or default based prices as estimates.
        """
        vehicle = normalize_vehicle_id(vehicle_id)
        lookup = await self.cache.get(trip.trip_kind, vehicle, force_refresh)
        quote = calculate_fare(lookup.schedule, trip)
        if lookup.is_estimate:
            logger.info(
                f"Quoted {trip.trip_kind.value}/{vehicle} from {lookup.source.value} schedule"
            )
        return quote.model_copy(update={"vehicle_id": vehicle, "source": lookup.source})

    async def quote_many(
        self, vehicle_ids: Iterable[str], trip: TripParams
    ) -> dict[str, FareQuote]:
        """Quote one trip for several vehicles, each normalized vehicle once."""
        vehicles = list(dict.fromkeys(normalize_vehicle_id(v) for v in vehicle_ids))
        quotes = await asyncio.gather(*(self.quote(v, trip) for v in vehicles))
        return dict(zip(vehicles, quotes))

    async def sync_all(self, force: bool = False) -> dict[TripKind, bool]:
        """Bulk refresh every trip kind; maps each kind to whether it was refreshed."""
        results = await asyncio.gather(
            *(self.cache.refresh_all(kind, force=force) for kind in TripKind)
        )
        return dict(zip(TripKind, results))

    async def update_schedule(
        self, trip_kind: TripKind, vehicle_id: str, schedule: Schedule
    ) -> dict[str, Any]:
        """Submit a schedule through the admin endpoint, then drop what it obsoletes.

        Transport errors propagate to the caller; nothing is invalidated when
        the update fails.
        """
        vehicle = normalize_vehicle_id(vehicle_id)
        result = await self._updater.update_schedule(trip_kind, vehicle, schedule)

        self.cache.invalidate(trip_kind, vehicle)
        if self._mirror is not None:
            self._mirror.forget(trip_kind, vehicle)

        now = self._clock.now()
        self._bus.publish(
            FareEventType.FARE_DATA_UPDATED,
            FareDataUpdatedEvent(timestamp=now, trip_kind=trip_kind, vehicle_ids=[vehicle]),
        )
        prices = schedule.model_dump(exclude={"vehicle_id"})
        self._bus.publish(
            FARES_UPDATED_EVENTS[trip_kind],
            FaresUpdatedEvent(
                timestamp=now, trip_kind=trip_kind, vehicle_id=vehicle, prices=prices
            ),
        )
        logger.info(f"Applied {trip_kind.value} schedule update for {vehicle}")
        return result
