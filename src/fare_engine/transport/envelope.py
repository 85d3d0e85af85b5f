"""Normalization of fare API envelopes into canonical schedules.

The fare endpoints answer ``{"status": ..., "fares": ...}`` where ``fares``
is a list of per-vehicle records, an object keyed by vehicle id, or a single
record. Whatever the shape, callers of this module only get canonical
schedule models back.
"""

import logging
from typing import Any

from pydantic import ValidationError

from ..core.exceptions import MalformedResponse, NoScheduleFound
from ..schedules import Schedule, TripKind, parse_schedule
from ..vehicles import normalize_vehicle_id

logger = logging.getLogger(__name__)

_VEHICLE_KEYS = ("vehicle_id", "vehicleId", "vehicle_type", "vehicleType")


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Return the raw per-vehicle records of a fare envelope."""
    if not isinstance(payload, dict):
        raise MalformedResponse(
            "Fare response is not a JSON object", details={"type": type(payload).__name__}
        )

    if payload.get("status") == "error":
        raise MalformedResponse(
            f"Fare API reported an error: {payload.get('message', 'no message')}",
            details={"payload": payload},
        )

    fares = payload.get("fares")
    if isinstance(fares, list):
        return [record for record in fares if isinstance(record, dict)]

    if isinstance(fares, dict):
        if fares and all(isinstance(value, dict) for value in fares.values()):
            records = []
            for key, record in fares.items():
                if not any(record.get(name) for name in _VEHICLE_KEYS):
                    record = {**record, "vehicle_id": key}
                records.append(record)
            return records
        return [fares]

    raise MalformedResponse(
        "Fare response has no usable 'fares' field",
        details={"fares_type": type(fares).__name__},
    )


def _record_vehicle(record: dict[str, Any]) -> str | None:
    for name in _VEHICLE_KEYS:
        value = record.get(name)
        if value is not None and str(value).strip():
            try:
                return normalize_vehicle_id(str(value))
            except ValueError:
                return None
    return None


def select_schedule(trip_kind: TripKind, payload: Any, vehicle_id: str) -> Schedule:
    """Pick the schedule for one vehicle out of a fare envelope."""
    wanted = normalize_vehicle_id(vehicle_id)
    records = extract_records(payload)

    match = next((r for r in records if _record_vehicle(r) == wanted), None)
    if match is None and len(records) == 1 and _record_vehicle(records[0]) is None:
        match = {**records[0], "vehicle_id": wanted}
    if match is None:
        raise NoScheduleFound(
            f"No {trip_kind.value} schedule for {wanted}",
            details={"trip_kind": trip_kind.value, "vehicle_id": wanted},
        )

    try:
        return parse_schedule(trip_kind, match)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid {trip_kind.value} schedule for {wanted}: {e}") from e


def parse_schedules(trip_kind: TripKind, payload: Any) -> dict[str, Schedule]:
    """Parse every identifiable vehicle record of a fare envelope."""
    schedules: dict[str, Schedule] = {}
    for record in extract_records(payload):
        if _record_vehicle(record) is None:
            logger.warning(f"Skipping {trip_kind.value} fare record without a vehicle id")
            continue
        try:
            schedule = parse_schedule(trip_kind, record)
        except ValidationError as e:
            logger.warning(f"Skipping invalid {trip_kind.value} fare record: {e}")
            continue
        schedules[schedule.vehicle_id] = schedule
    return schedules
