"""Reconciliation state machine for one fare consumer."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.exceptions import InvalidTransitionError
from ..fare import TripParams
from ..schedules import TripKind
from ..vehicles import normalize_vehicle_id


class ReconciliationPhase(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    CALCULATING = "calculating"
    SETTLED = "settled"


VALID_TRANSITIONS: dict[ReconciliationPhase, set[ReconciliationPhase]] = {
    ReconciliationPhase.IDLE: {ReconciliationPhase.PENDING},
    ReconciliationPhase.PENDING: {ReconciliationPhase.CALCULATING},
    # Back to PENDING when an attempt fails and another one is scheduled
    ReconciliationPhase.CALCULATING: {ReconciliationPhase.SETTLED, ReconciliationPhase.PENDING},
    ReconciliationPhase.SETTLED: {ReconciliationPhase.PENDING},
}


class SettlementSource(str, Enum):
    """Which value a settlement displays."""

    COMPUTED = "computed"
    AUTHORITATIVE = "authoritative"
    # Attempts exhausted; best value known without fetching
    FALLBACK = "fallback"


class TripConfiguration(BaseModel):
    """What a consumer is pricing. (trip kind, vehicle) is its identity."""

    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    trip: TripParams

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def normalize_vehicle(cls, v: Any) -> str:
        return normalize_vehicle_id(str(v))

    @property
    def trip_kind(self) -> TripKind:
        return self.trip.trip_kind

    @property
    def identity(self) -> tuple[TripKind, str]:
        return (self.trip_kind, self.vehicle_id)


class ReconciliationState(BaseModel):
    """Mutable per-episode state; discarded when the configuration identity changes."""

    trip_kind: TripKind
    vehicle_id: str
    phase: ReconciliationPhase = Field(default=ReconciliationPhase.IDLE)
    attempt: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    pending: bool = False
    calculating: bool = False
    pending_recalculation: bool = False
    settled_fare: float | None = None
    settled_source: SettlementSource | None = None
    last_settled_at: float | None = None
    last_computed_fare: float | None = None
    authoritative_fare: float | None = None
    hint_fare: float | None = None
    last_event_timestamp: float = 0.0

    def transition_to(self, new_phase: ReconciliationPhase) -> None:
        """Transition to a new phase with validation."""
        if new_phase not in VALID_TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"Invalid transition from {self.phase.value} to {new_phase.value}",
                details={"vehicle_id": self.vehicle_id, "trip_kind": self.trip_kind.value},
            )
        self.phase = new_phase

    def begin_attempt(self) -> bool:
        """Count an attempt; False once the ceiling has been passed."""
        self.attempt += 1
        return self.attempt <= self.max_attempts

    def reset_attempts(self) -> None:
        self.attempt = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    @property
    def display_fare(self) -> float | None:
        """Settled fare, or the mirrored hint before the first settlement."""
        return self.settled_fare if self.settled_fare is not None else self.hint_fare

    @property
    def fallback_fare(self) -> float | None:
        """Best value available without fetching, best first."""
        for candidate in (self.authoritative_fare, self.last_computed_fare, self.hint_fare):
            if candidate is not None:
                return candidate
        return None
