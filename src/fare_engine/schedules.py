"""Canonical fare schedule models.

Every schedule the rest of the package sees has gone through these models:
the transport layer validates raw records into them immediately on receipt,
so alternate field spellings, numeric strings and missing or non-finite
values never reach the computation functions.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .vehicles import normalize_vehicle_id


class TripKind(str, Enum):
    """Trip families, each with its own schedule shape."""

    OUTSTATION = "outstation"
    LOCAL = "local"
    AIRPORT = "airport"


class TripMode(str, Enum):
    ONE_WAY = "one-way"
    ROUND_TRIP = "round-trip"


class FareSource(str, Enum):
    """Where a fare lookup was resolved from, best first."""

    FRESH = "fresh"
    CACHED = "cached"
    STALE = "stale"
    DEFAULT = "default"

    @property
    def is_estimate(self) -> bool:
        return self in (FareSource.STALE, FareSource.DEFAULT)


def _coerce_amount(value: Any) -> float:
    """Coerce a raw numeric field to a finite float, 0.0 when unusable."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount):
        return 0.0
    return amount


def _amount(*names: str) -> Any:
    return Field(default=0.0, validation_alias=AliasChoices(*names))


class ScheduleModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    vehicle_id: str = Field(
        default="",
        validation_alias=AliasChoices("vehicle_id", "vehicleId", "vehicle_type", "vehicleType"),
    )

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def normalize_vehicle(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            return ""
        return normalize_vehicle_id(str(v))

    @field_validator("*", mode="before")
    @classmethod
    def coerce_amounts(cls, v: Any, info: ValidationInfo) -> Any:
        if info.field_name == "vehicle_id":
            return v
        return _coerce_amount(v)

    def to_form(self) -> dict[str, str]:
        """Camel-case form fields as the admin update endpoint expects them."""
        form = {}
        for name, field in type(self).model_fields.items():
            if name == "vehicle_id":
                continue
            alias = field.validation_alias
            key = alias.choices[1] if isinstance(alias, AliasChoices) else name
            form[str(key)] = str(getattr(self, name))
        return form


class OutstationFareSchedule(ScheduleModel):
    base_price: float = _amount("base_price", "basePrice", "base_fare", "baseFare")
    price_per_km: float = _amount("price_per_km", "pricePerKm", "per_km_rate", "perKmRate")
    round_trip_base_price: float = _amount(
        "round_trip_base_price", "roundTripBasePrice", "roundtrip_base_price"
    )
    round_trip_price_per_km: float = _amount(
        "round_trip_price_per_km", "roundTripPricePerKm", "roundtrip_price_per_km"
    )
    driver_allowance: float = _amount("driver_allowance", "driverAllowance")
    night_halt_charge: float = _amount(
        "night_halt_charge", "nightHaltCharge", "night_halt", "nightHalt"
    )


class LocalFareSchedule(ScheduleModel):
    package_4hr_40km: float = _amount(
        "package_4hr_40km",
        "price4hrs40km",
        "price_4hrs_40km",
        "package4hr40km",
        "price_4hr_40km",
    )
    package_8hr_80km: float = _amount(
        "package_8hr_80km",
        "price8hrs80km",
        "price_8hrs_80km",
        "package8hr80km",
        "price_8hr_80km",
    )
    package_10hr_100km: float = _amount(
        "package_10hr_100km",
        "price10hrs100km",
        "price_10hrs_100km",
        "package10hr100km",
        "price_10hr_100km",
    )
    extra_km_rate: float = _amount("extra_km_rate", "extraKmRate", "price_extra_km", "priceExtraKm")
    extra_hour_rate: float = _amount(
        "extra_hour_rate", "extraHourRate", "price_extra_hour", "priceExtraHour"
    )
    driver_allowance: float = _amount("driver_allowance", "driverAllowance")

    def package_price(self, package_id: str) -> float:
        """Flat price for a canonical package id, 0.0 when unknown."""
        return {
            "4hrs-40km": self.package_4hr_40km,
            "8hrs-80km": self.package_8hr_80km,
            "10hrs-100km": self.package_10hr_100km,
        }.get(package_id, 0.0)


class AirportFareSchedule(ScheduleModel):
    base_price: float = _amount("base_price", "basePrice")
    price_per_km: float = _amount("price_per_km", "pricePerKm")
    tier1_price: float = _amount("tier1_price", "tier1Price")
    tier2_price: float = _amount("tier2_price", "tier2Price")
    tier3_price: float = _amount("tier3_price", "tier3Price")
    tier4_price: float = _amount("tier4_price", "tier4Price")
    extra_km_charge: float = _amount("extra_km_charge", "extraKmCharge")

    @property
    def tiers(self) -> tuple[float, float, float, float]:
        return (self.tier1_price, self.tier2_price, self.tier3_price, self.tier4_price)


Schedule = OutstationFareSchedule | LocalFareSchedule | AirportFareSchedule

SCHEDULE_MODELS: dict[TripKind, type[ScheduleModel]] = {
    TripKind.OUTSTATION: OutstationFareSchedule,
    TripKind.LOCAL: LocalFareSchedule,
    TripKind.AIRPORT: AirportFareSchedule,
}


def parse_schedule(trip_kind: TripKind, record: dict[str, Any]) -> Schedule:
    """Validate one raw per-vehicle record into the canonical schedule for a trip kind."""
    return SCHEDULE_MODELS[trip_kind].model_validate(record)  # type: ignore[return-value]


@dataclass(frozen=True)
class CacheEntry:
    """A cached schedule with its fetch and expiry times (epoch seconds)."""

    data: Schedule
    fetched_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at
