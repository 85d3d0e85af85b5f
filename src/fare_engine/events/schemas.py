"""Fare event vocabulary and one payload model per event type."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..schedules import FareSource, TripKind


class FareEventType(str, Enum):
    FARE_CALCULATED = "fare-calculated"
    FARE_CACHE_CLEARED = "fare-cache-cleared"
    FARE_DATA_UPDATED = "fare-data-updated"
    FARE_CACHE_INVALIDATED = "fare-cache-invalidated"
    SIGNIFICANT_FARE_DIFFERENCE = "significant-fare-difference"
    # Raised by the booking UI
    CAB_SELECTED = "cab-selected"
    TRIP_FARES_UPDATED = "trip-fares-updated"
    LOCAL_FARES_UPDATED = "local-fares-updated"
    AIRPORT_FARES_UPDATED = "airport-fares-updated"


class FareEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: float


class FareCalculatedEvent(FareEvent):
    """A settled fare for one (trip kind, vehicle) pairing."""

    trip_kind: TripKind
    vehicle_id: str
    fare: float
    source: FareSource = FareSource.FRESH
    publisher_id: str | None = None


class FareCacheClearedEvent(FareEvent):
    pass


class FareDataUpdatedEvent(FareEvent):
    """Schedules were refreshed in bulk or replaced by an admin update."""

    trip_kind: TripKind | None = None
    vehicle_ids: list[str] = Field(default_factory=list)


class FareCacheInvalidatedEvent(FareEvent):
    trip_kind: TripKind
    vehicle_id: str | None = None


class SignificantFareDifferenceEvent(FareEvent):
    """A consumer's computed fare diverged from the authoritative total."""

    trip_kind: TripKind
    vehicle_id: str
    computed_fare: float
    authoritative_fare: float
    difference: float
    overridden: bool
    consumer_id: str


class CabSelectedEvent(FareEvent):
    trip_kind: TripKind
    vehicle_id: str


class FaresUpdatedEvent(FareEvent):
    """Schedule for one vehicle was changed through the admin endpoint."""

    trip_kind: TripKind
    vehicle_id: str
    prices: dict[str, float] = Field(default_factory=dict)


EVENT_PAYLOADS: dict[FareEventType, type[FareEvent]] = {
    FareEventType.FARE_CALCULATED: FareCalculatedEvent,
    FareEventType.FARE_CACHE_CLEARED: FareCacheClearedEvent,
    FareEventType.FARE_DATA_UPDATED: FareDataUpdatedEvent,
    FareEventType.FARE_CACHE_INVALIDATED: FareCacheInvalidatedEvent,
    FareEventType.SIGNIFICANT_FARE_DIFFERENCE: SignificantFareDifferenceEvent,
    FareEventType.CAB_SELECTED: CabSelectedEvent,
    FareEventType.TRIP_FARES_UPDATED: FaresUpdatedEvent,
    FareEventType.LOCAL_FARES_UPDATED: FaresUpdatedEvent,
    FareEventType.AIRPORT_FARES_UPDATED: FaresUpdatedEvent,
}

FARES_UPDATED_EVENTS: dict[TripKind, FareEventType] = {
    TripKind.OUTSTATION: FareEventType.TRIP_FARES_UPDATED,
    TripKind.LOCAL: FareEventType.LOCAL_FARES_UPDATED,
    TripKind.AIRPORT: FareEventType.AIRPORT_FARES_UPDATED,
}
