import pytest
from pydantic import ValidationError

from fare_engine.core.exceptions import InvalidTransitionError
from fare_engine.fare import AirportTrip, LocalTrip
from fare_engine.reconciliation.state import (
    VALID_TRANSITIONS,
    ReconciliationPhase,
    ReconciliationState,
    TripConfiguration,
)
from fare_engine.schedules import TripKind


@pytest.fixture
def state() -> ReconciliationState:
    return ReconciliationState(trip_kind=TripKind.AIRPORT, vehicle_id="sedan", max_attempts=3)


@pytest.mark.unit
class TestTripConfiguration:
    def test_identity_is_kind_and_canonical_vehicle(self):
        config = TripConfiguration(vehicle_id="Innova Crysta", trip=AirportTrip(distance_km=30))

        assert config.vehicle_id == "innova_crysta"
        assert config.trip_kind == TripKind.AIRPORT
        assert config.identity == (TripKind.AIRPORT, "innova_crysta")

    def test_identity_ignores_trip_details(self):
        short = TripConfiguration(vehicle_id="sedan", trip=LocalTrip(distance_km=20))
        long = TripConfiguration(vehicle_id="Sedan", trip=LocalTrip(distance_km=140))
        assert short.identity == long.identity

    def test_frozen(self):
        config = TripConfiguration(vehicle_id="sedan", trip=AirportTrip())
        with pytest.raises(ValidationError):
            config.vehicle_id = "ertiga"


@pytest.mark.unit
class TestPhaseTransitions:
    def test_every_phase_has_transitions(self):
        assert set(VALID_TRANSITIONS) == set(ReconciliationPhase)

    def test_happy_path(self, state):
        state.transition_to(ReconciliationPhase.PENDING)
        state.transition_to(ReconciliationPhase.CALCULATING)
        state.transition_to(ReconciliationPhase.SETTLED)
        state.transition_to(ReconciliationPhase.PENDING)

        assert state.phase == ReconciliationPhase.PENDING

    def test_failed_attempt_returns_to_pending(self, state):
        state.transition_to(ReconciliationPhase.PENDING)
        state.transition_to(ReconciliationPhase.CALCULATING)
        state.transition_to(ReconciliationPhase.PENDING)

        assert state.phase == ReconciliationPhase.PENDING

    @pytest.mark.parametrize(
        "target", [ReconciliationPhase.CALCULATING, ReconciliationPhase.SETTLED]
    )
    def test_idle_cannot_skip_pending(self, state, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            state.transition_to(target)

        assert exc_info.value.details == {"vehicle_id": "sedan", "trip_kind": "airport"}
        assert state.phase == ReconciliationPhase.IDLE


@pytest.mark.unit
class TestAttempts:
    def test_ceiling(self, state):
        assert [state.begin_attempt() for _ in range(4)] == [True, True, True, False]
        assert state.exhausted

    def test_reset(self, state):
        for _ in range(3):
            state.begin_attempt()
        state.reset_attempts()

        assert state.attempt == 0
        assert not state.exhausted


@pytest.mark.unit
class TestFallbackValues:
    def test_fallback_prefers_authoritative(self, state):
        state.hint_fare = 1990
        state.last_computed_fare = 2070
        state.authoritative_fare = 2150
        assert state.fallback_fare == 2150

    def test_fallback_then_last_computed_then_hint(self, state):
        assert state.fallback_fare is None
        state.hint_fare = 1990
        assert state.fallback_fare == 1990
        state.last_computed_fare = 2070
        assert state.fallback_fare == 2070

    def test_display_fare_uses_hint_until_settled(self, state):
        state.hint_fare = 1990
        assert state.display_fare == 1990

        state.settled_fare = 2070
        assert state.display_fare == 2070
