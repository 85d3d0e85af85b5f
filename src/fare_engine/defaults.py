"""Hardcoded last-resort fare schedules, keyed by canonical vehicle id.

These are only served when the fare API fails and nothing was ever cached
for the requested vehicle. They are never written into the cache.
"""

from collections.abc import Mapping

from .schedules import (
    AirportFareSchedule,
    LocalFareSchedule,
    OutstationFareSchedule,
    Schedule,
    TripKind,
)
from .vehicles import normalize_vehicle_id

GENERIC_VEHICLE = "generic"


def _outstation(
    base: float,
    per_km: float,
    night_halt: float,
    allowance: float,
    rt_base: float,
    rt_per_km: float,
) -> OutstationFareSchedule:
    return OutstationFareSchedule(
        base_price=base,
        price_per_km=per_km,
        night_halt_charge=night_halt,
        driver_allowance=allowance,
        round_trip_base_price=rt_base,
        round_trip_price_per_km=rt_per_km,
    )


def _local(
    price_4hr: float, price_8hr: float, price_10hr: float, extra_km: float, extra_hour: float
) -> LocalFareSchedule:
    return LocalFareSchedule(
        package_4hr_40km=price_4hr,
        package_8hr_80km=price_8hr,
        package_10hr_100km=price_10hr,
        extra_km_rate=extra_km,
        extra_hour_rate=extra_hour,
    )


def _airport(
    base: float, per_km: float, tiers: tuple[float, float, float, float], extra_km: float
) -> AirportFareSchedule:
    return AirportFareSchedule(
        base_price=base,
        price_per_km=per_km,
        tier1_price=tiers[0],
        tier2_price=tiers[1],
        tier3_price=tiers[2],
        tier4_price=tiers[3],
        extra_km_charge=extra_km,
    )


DEFAULT_OUTSTATION: dict[str, OutstationFareSchedule] = {
    "sedan": _outstation(4200, 14, 700, 250, 4000, 12),
    "dzire_cng": _outstation(4200, 14, 700, 250, 4000, 12),
    "ertiga": _outstation(5400, 18, 1000, 250, 5000, 15),
    "innova_crysta": _outstation(6000, 20, 1000, 250, 5600, 17),
    "innova_hycross": _outstation(6000, 20, 1000, 250, 5600, 17),
    "tempo_traveller": _outstation(9000, 22, 1500, 300, 8500, 19),
    "luxury": _outstation(10500, 25, 1500, 300, 10000, 22),
    GENERIC_VEHICLE: _outstation(4200, 14, 700, 250, 4000, 12),
}

DEFAULT_LOCAL: dict[str, LocalFareSchedule] = {
    "sedan": _local(1800, 3000, 3600, 12, 200),
    "dzire_cng": _local(2000, 3200, 4000, 13, 200),
    "ertiga": _local(2200, 3600, 4500, 15, 250),
    "innova_crysta": _local(2600, 4200, 5200, 18, 300),
    "innova_hycross": _local(3000, 4500, 5500, 18, 300),
    "tempo_traveller": _local(4500, 7000, 8500, 22, 400),
    "luxury": _local(3500, 5500, 6500, 22, 350),
    GENERIC_VEHICLE: _local(2000, 3200, 4000, 14, 250),
}

DEFAULT_AIRPORT: dict[str, AirportFareSchedule] = {
    "sedan": _airport(3000, 12, (600, 800, 1000, 1200), 12),
    "ertiga": _airport(3500, 15, (800, 1000, 1200, 1400), 15),
    "innova_crysta": _airport(4000, 17, (1000, 1200, 1400, 1600), 17),
    "innova_hycross": _airport(4500, 18, (1000, 1200, 1400, 1600), 18),
    "tempo_traveller": _airport(6000, 19, (1600, 1800, 2000, 2500), 19),
    "luxury": _airport(7000, 22, (2000, 2200, 2500, 3000), 22),
    GENERIC_VEHICLE: _airport(3000, 15, (800, 1000, 1200, 1400), 15),
}

_DEFAULTS: dict[TripKind, Mapping[str, Schedule]] = {
    TripKind.OUTSTATION: DEFAULT_OUTSTATION,
    TripKind.LOCAL: DEFAULT_LOCAL,
    TripKind.AIRPORT: DEFAULT_AIRPORT,
}


def default_schedule(trip_kind: TripKind, vehicle_id: str) -> Schedule:
    """Return the hardcoded schedule for a vehicle, or the generic one for unknown vehicles."""
    key = normalize_vehicle_id(vehicle_id)
    table = _DEFAULTS[trip_kind]
    schedule = table.get(key, table[GENERIC_VEHICLE])
    return schedule.model_copy(update={"vehicle_id": key})
