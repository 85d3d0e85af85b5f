"""Fare computation for outstation, local and airport trips.

All functions here are pure: a schedule and the trip parameters go in, a
FareQuote comes out. Quotes are never cached, only the schedules are.
"""

import math
from datetime import date, datetime, time
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, Field, field_validator

from .schedules import (
    AirportFareSchedule,
    FareSource,
    LocalFareSchedule,
    OutstationFareSchedule,
    Schedule,
    TripKind,
    TripMode,
)
from .vehicles import DEFAULT_PACKAGE_ID, LOCAL_PACKAGES, normalize_package_id

MINIMUM_KM_PER_DAY = 300
NIGHT_SURCHARGE_RATE = 0.10
NIGHT_START = time(22, 0)
NIGHT_END = time(5, 0)
AIRPORT_BANDS_KM = (10, 20, 30, 40)


class FareQuote(BaseModel):
    """Price for one trip with its named charge components."""

    trip_kind: TripKind
    vehicle_id: str = ""
    total_price: float
    base_price: float
    breakdown: dict[str, float] = Field(default_factory=dict)
    source: FareSource = FareSource.FRESH

    @property
    def is_estimate(self) -> bool:
        return self.source.is_estimate


def _finite_distance(v: float) -> float:
    return v if math.isfinite(v) else 0.0


Distance = Annotated[
    float,
    BeforeValidator(lambda v: 0.0 if v is None else v),
    AfterValidator(_finite_distance),
]


class OutstationTrip(BaseModel):
    distance_km: Distance = 0.0
    mode: TripMode = TripMode.ONE_WAY
    pickup_at: datetime | None = None
    return_at: datetime | None = None

    @property
    def trip_kind(self) -> TripKind:
        return TripKind.OUTSTATION


class LocalTrip(BaseModel):
    package_id: str = DEFAULT_PACKAGE_ID
    distance_km: Distance = 0.0
    duration_hours: float | None = None

    @field_validator("package_id", mode="before")
    @classmethod
    def normalize_package(cls, v: Any) -> str:
        return normalize_package_id(v)

    @property
    def trip_kind(self) -> TripKind:
        return TripKind.LOCAL


class AirportTrip(BaseModel):
    distance_km: Distance = 0.0

    @property
    def trip_kind(self) -> TripKind:
        return TripKind.AIRPORT


TripParams = OutstationTrip | LocalTrip | AirportTrip


def _amount(value: float) -> float:
    """Guard a charge component so NaN or infinity never reaches a total."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def _total(breakdown: dict[str, float]) -> float:
    return sum(_amount(v) for v in breakdown.values())


def round_up_to_ten(amount: float) -> float:
    """Round up to the next multiple of 10, ignoring sub-paisa float noise."""
    return float(math.ceil(round(_amount(amount), 2) / 10) * 10)


def trip_days(pickup_at: datetime | None, return_at: datetime | None) -> int:
    """Calendar days covered by a round trip, counting both ends."""
    if pickup_at is None or return_at is None:
        return 1
    start: date = pickup_at.date()
    end: date = return_at.date()
    return max(1, (end - start).days + 1)


def is_night_pickup(pickup_at: datetime | None) -> bool:
    if pickup_at is None:
        return False
    t = pickup_at.time()
    return t >= NIGHT_START or t <= NIGHT_END


def calculate_outstation_fare(
    schedule: OutstationFareSchedule, trip: OutstationTrip
) -> FareQuote:
    """Outstation fare with a 300 km per day minimum on the round-trip-equivalent distance.

    One-way trips are billed for distance x 2 at one-way rates. Round trips
    bill every calendar day between pickup and return: base fare and driver
    allowance per day, night halt for every day after the first, and extra
    kilometers beyond days x 300 at the round-trip per-km rate. Round-trip
    rates fall back to one-way rates when the schedule leaves them at 0.
    """
    if trip.distance_km <= 0:
        base = _amount(schedule.base_price)
        return FareQuote(
            trip_kind=TripKind.OUTSTATION,
            vehicle_id=schedule.vehicle_id,
            total_price=round_up_to_ten(base),
            base_price=base,
            breakdown={"base_fare": base},
        )

    if trip.mode == TripMode.ROUND_TRIP:
        days = trip_days(trip.pickup_at, trip.return_at)
        base_rate = _amount(schedule.round_trip_base_price) or _amount(schedule.base_price)
        per_km = _amount(schedule.round_trip_price_per_km) or _amount(schedule.price_per_km)
    else:
        days = 1
        base_rate = _amount(schedule.base_price)
        per_km = _amount(schedule.price_per_km)

    effective_km = trip.distance_km * 2
    minimum_km = days * MINIMUM_KM_PER_DAY
    extra_km = max(effective_km - minimum_km, 0.0)
    base_fare = base_rate * days

    breakdown = {
        "base_fare": base_fare,
        "distance_charge": extra_km * per_km,
        "driver_allowance": _amount(schedule.driver_allowance) * days,
        "night_halt": _amount(schedule.night_halt_charge) * (days - 1),
        "night_surcharge": (
            base_fare * NIGHT_SURCHARGE_RATE if is_night_pickup(trip.pickup_at) else 0.0
        ),
    }

    return FareQuote(
        trip_kind=TripKind.OUTSTATION,
        vehicle_id=schedule.vehicle_id,
        total_price=round_up_to_ten(_total(breakdown)),
        base_price=_amount(base_fare),
        breakdown={k: _amount(v) for k, v in breakdown.items()},
    )


def calculate_local_fare(schedule: LocalFareSchedule, trip: LocalTrip) -> FareQuote:
    """Flat package price plus extra kilometers and extra hours beyond the package."""
    package = LOCAL_PACKAGES[trip.package_id]
    package_price = _amount(schedule.package_price(package.package_id))
    breakdown = {"package_price": package_price}

    if trip.distance_km > package.km:
        breakdown["extra_km_charge"] = (trip.distance_km - package.km) * _amount(
            schedule.extra_km_rate
        )
    if trip.duration_hours is not None and trip.duration_hours > package.hours:
        breakdown["extra_hour_charge"] = (trip.duration_hours - package.hours) * _amount(
            schedule.extra_hour_rate
        )

    return FareQuote(
        trip_kind=TripKind.LOCAL,
        vehicle_id=schedule.vehicle_id,
        total_price=round(_total(breakdown), 2),
        base_price=package_price,
        breakdown={k: _amount(v) for k, v in breakdown.items()},
    )


def calculate_airport_fare(schedule: AirportFareSchedule, trip: AirportTrip) -> FareQuote:
    """Banded airport transfer fare.

    Distance picks tier1..tier4 at 10/20/30/40 km; beyond 40 km the extra
    kilometers are added to tier4 at extra_km_charge. A band left at 0 in the
    schedule falls back to base_price + distance x price_per_km.
    """
    distance = trip.distance_km
    base = _amount(schedule.base_price)

    if distance <= 0:
        breakdown = {"base_fare": base}
    else:
        band = next(
            (i for i, limit in enumerate(AIRPORT_BANDS_KM) if distance <= limit),
            len(AIRPORT_BANDS_KM) - 1,
        )
        tier_price = _amount(schedule.tiers[band])
        if tier_price <= 0:
            breakdown = {
                "base_fare": base,
                "distance_charge": distance * _amount(schedule.price_per_km),
            }
        else:
            breakdown = {"tier_price": tier_price}
            if distance > AIRPORT_BANDS_KM[-1]:
                breakdown["extra_km_charge"] = (distance - AIRPORT_BANDS_KM[-1]) * _amount(
                    schedule.extra_km_charge
                )

    return FareQuote(
        trip_kind=TripKind.AIRPORT,
        vehicle_id=schedule.vehicle_id,
        total_price=round_up_to_ten(_total(breakdown)),
        base_price=breakdown.get("tier_price", base),
        breakdown={k: _amount(v) for k, v in breakdown.items()},
    )


def calculate_fare(schedule: Schedule, trip: TripParams) -> FareQuote:
    """Dispatch to the computation function matching the trip parameters."""
    if isinstance(trip, OutstationTrip) and isinstance(schedule, OutstationFareSchedule):
        return calculate_outstation_fare(schedule, trip)
    if isinstance(trip, LocalTrip) and isinstance(schedule, LocalFareSchedule):
        return calculate_local_fare(schedule, trip)
    if isinstance(trip, AirportTrip) and isinstance(schedule, AirportFareSchedule):
        return calculate_airport_fare(schedule, trip)
    raise TypeError(
        f"Schedule {type(schedule).__name__} does not match trip {type(trip).__name__}"
    )
