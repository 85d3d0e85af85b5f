"""Per-consumer fare reconciliation loop.

A FareReconciler keeps one consumer's displayed fare converged with its
trip configuration. Triggers are debounced into a single recompute, throttled
after each settlement, and counted: once an episode has used max_attempts
computations it settles on the best known value without fetching until the
periodic reset tick clears the counter. Every timer goes through the
Scheduler, so close() and identity changes cancel them structurally.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..core.clock import Clock, SystemClock
from ..core.scheduler import ScheduledTask, Scheduler
from ..defaults import default_schedule
from ..events.bus import EventBus
from ..events.schemas import (
    CabSelectedEvent,
    FareCalculatedEvent,
    FareEvent,
    FareEventType,
    SignificantFareDifferenceEvent,
)
from ..fare import FareQuote, calculate_fare
from ..fare_logging import log_context
from ..metrics import fare_settlements, fare_significant_differences
from ..persistence.mirror import SettledFareMirror
from ..schedules import FareSource
from ..service import FareService
from ..settings import ReconciliationSettings
from ..vehicles import normalize_vehicle_id
from .state import (
    ReconciliationPhase,
    ReconciliationState,
    SettlementSource,
    TripConfiguration,
)

logger = logging.getLogger(__name__)

# Events after which the tracked fare may have changed upstream
_SCHEDULE_EVENTS = (
    FareEventType.FARE_CACHE_INVALIDATED,
    FareEventType.FARE_CACHE_CLEARED,
    FareEventType.FARE_DATA_UPDATED,
    FareEventType.TRIP_FARES_UPDATED,
    FareEventType.LOCAL_FARES_UPDATED,
    FareEventType.AIRPORT_FARES_UPDATED,
)


def default_quote(configuration: TripConfiguration) -> FareQuote:
    trip_kind, vehicle_id = configuration.identity
    quote = calculate_fare(default_schedule(trip_kind, vehicle_id), configuration.trip)
    return quote.model_copy(update={"vehicle_id": vehicle_id, "source": FareSource.DEFAULT})


@dataclass(frozen=True)
class Settlement:
    fare: float | None
    source: SettlementSource
    attempt: int
    computed_fare: float | None = None
    authoritative_fare: float | None = None
    quote: FareQuote | None = None

    @property
    def is_estimate(self) -> bool:
        if self.source == SettlementSource.FALLBACK:
            return True
        return self.quote is not None and self.quote.is_estimate


class FareReconciler:
    def __init__(
        self,
        consumer_id: str,
        service: FareService,
        bus: EventBus,
        settings: ReconciliationSettings | None = None,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        mirror: SettledFareMirror | None = None,
        on_settled: Callable[[Settlement], None] | None = None,
    ):
        self.consumer_id = consumer_id
        self._service = service
        self._bus = bus
        self.settings = settings or ReconciliationSettings()
        self._scheduler = scheduler or Scheduler()
        self._clock = clock or SystemClock()
        self._mirror = mirror
        self._on_settled = on_settled

        self.configuration: TripConfiguration | None = None
        self.state: ReconciliationState | None = None
        self.last_settlement: Settlement | None = None

        self._generation = 0
        self._timer: ScheduledTask | None = None
        self._reset_tick: ScheduledTask | None = None
        self._task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._idle = asyncio.Event()
        self._idle.set()
        self._started = False
        self._closed = False

    @property
    def display_fare(self) -> float | None:
        return None if self.state is None else self.state.display_fare

    def start(self) -> None:
        """Subscribe to fare events and start the attempt reset tick."""
        if self._started:
            return
        self._started = True

        self._unsubscribers.append(
            self._bus.subscribe(FareEventType.FARE_CALCULATED, self._on_fare_calculated)
        )
        self._unsubscribers.append(
            self._bus.subscribe(FareEventType.CAB_SELECTED, self._on_cab_selected)
        )
        for event_type in _SCHEDULE_EVENTS:
            self._unsubscribers.append(self._bus.subscribe(event_type, self._on_schedule_event))

        self._reset_tick = self._scheduler.call_every(
            self.settings.reset_interval_seconds, self.reset_attempts, name="attempt-reset"
        )

    def track(
        self, configuration: TripConfiguration, authoritative_fare: float | None = None
    ) -> None:
        """Track a trip configuration; a new (trip kind, vehicle) starts a new episode."""
        if self._closed:
            raise RuntimeError(f"Reconciler {self.consumer_id} is closed")
        if not self._started:
            self.start()

        if self.configuration is None or self.configuration.identity != configuration.identity:
            self._begin_episode(configuration)
        self.configuration = configuration

        assert self.state is not None
        if authoritative_fare is not None:
            self.state.authoritative_fare = authoritative_fare
        self.trigger("configuration")

    def set_authoritative_fare(self, fare: float | None) -> None:
        """Total supplied by the parent, e.g. the booking summary."""
        if self.state is None:
            return
        self.state.authoritative_fare = fare
        self.trigger("authoritative fare")

    def trigger(self, reason: str = "manual") -> None:
        state = self.state
        if state is None or self._closed:
            return

        now = self._scheduler.now()

        with log_context(consumer_id=self.consumer_id):
            if state.calculating:
                if not state.pending_recalculation:
                    logger.debug(f"Trigger '{reason}' during calculation, recalculation queued")
                state.pending_recalculation = True
                return
            if state.pending:
                logger.debug(f"Trigger '{reason}' coalesced into pending recompute")
                return

            delay = self.settings.debounce_seconds
            if state.last_settled_at is not None:
                throttle_left = state.last_settled_at + self.settings.throttle_seconds - now
                delay = max(delay, throttle_left)

            state.pending = True
            if state.phase != ReconciliationPhase.PENDING:
                state.transition_to(ReconciliationPhase.PENDING)
            self._idle.clear()
            self._timer = self._scheduler.call_later(delay, self._on_timer, name="recompute")
            logger.debug(f"Trigger '{reason}' scheduled recompute in {delay:.3f}s")

    def reset_attempts(self) -> None:
        """Periodic tick: allow computations again after attempts ran out.

        A consumer left showing a fallback fare recomputes right away, since
        the fallback may belong to inputs it has since moved past.
        """
        state = self.state
        if state is None or not state.attempt:
            return
        stranded = state.exhausted and state.settled_source == SettlementSource.FALLBACK
        logger.debug(f"Resetting {state.attempt} attempts for {self.consumer_id}")
        state.reset_attempts()
        if stranded:
            self.trigger("attempt reset")

    async def wait_idle(self) -> None:
        """Wait until no recompute is scheduled or running."""
        await self._idle.wait()

    async def close(self) -> None:
        """Unsubscribe, cancel every timer and any running computation."""
        if self._closed:
            return
        self._closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        self._scheduler.cancel_all()
        self._timer = None
        self._reset_tick = None
        await self._cancel_computation()
        self.state = None
        self.configuration = None
        self._idle.set()

    def _begin_episode(self, configuration: TripConfiguration) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._generation += 1

        trip_kind, vehicle_id = configuration.identity
        hint = self._mirror.recall(trip_kind, vehicle_id) if self._mirror is not None else None
        self.state = ReconciliationState(
            trip_kind=trip_kind,
            vehicle_id=vehicle_id,
            max_attempts=self.settings.max_attempts,
            hint_fare=hint,
        )
        self._idle.set()
        logger.info(
            f"{self.consumer_id} tracking {trip_kind.value}/{vehicle_id}"
            + (f" (hint {hint})" if hint is not None else "")
        )

    async def _cancel_computation(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _on_timer(self) -> None:
        self._timer = None
        self._task = asyncio.ensure_future(self._recalculate(self._generation))

    async def _recalculate(self, generation: int) -> None:
        state = self.state
        configuration = self.configuration
        if state is None or configuration is None or generation != self._generation:
            return

        with log_context(
            consumer_id=self.consumer_id,
            trip_kind=state.trip_kind.value,
            vehicle_id=state.vehicle_id,
        ):
            state.pending = False
            state.pending_recalculation = False
            state.transition_to(ReconciliationPhase.CALCULATING)
            state.calculating = True

            if not state.begin_attempt():
                self._settle(state, self._fallback_settlement(state))
                return

            try:
                quote = await self._service.quote(configuration.vehicle_id, configuration.trip)
            except Exception:
                if generation != self._generation:
                    return
                logger.exception(
                    f"Fare computation failed (attempt {state.attempt}/{state.max_attempts})"
                )
                state.calculating = False
                state.transition_to(ReconciliationPhase.PENDING)
                self._retry_after_failure(state)
                return

            if generation != self._generation:
                logger.debug("Discarding computation for a superseded configuration")
                return

            state.last_computed_fare = quote.total_price
            self._settle(state, self._arbitrate(state, quote))

    def _retry_after_failure(self, state: ReconciliationState) -> None:
        state.pending = True
        self._timer = self._scheduler.call_later(
            self.settings.debounce_seconds, self._on_timer, name="recompute-retry"
        )

    def _arbitrate(self, state: ReconciliationState, quote: FareQuote) -> Settlement:
        computed = quote.total_price
        authoritative = state.authoritative_fare
        if authoritative is None:
            return Settlement(
                fare=computed,
                source=SettlementSource.COMPUTED,
                attempt=state.attempt,
                computed_fare=computed,
                quote=quote,
            )

        difference = abs(computed - authoritative)
        overridden = False
        if difference > self.settings.significant_difference:
            overridden = (
                state.trip_kind in self.settings.override_trip_kinds
                and difference > self.settings.override_difference
            )
            logger.warning(
                f"Computed fare {computed} differs from authoritative {authoritative} "
                f"by {difference:.2f}" + (", using computed fare" if overridden else "")
            )
            fare_significant_differences.labels(
                trip_kind=state.trip_kind.value, overridden=str(overridden).lower()
            ).inc()
            self._bus.publish(
                FareEventType.SIGNIFICANT_FARE_DIFFERENCE,
                SignificantFareDifferenceEvent(
                    timestamp=self._clock.now(),
                    trip_kind=state.trip_kind,
                    vehicle_id=state.vehicle_id,
                    computed_fare=computed,
                    authoritative_fare=authoritative,
                    difference=difference,
                    overridden=overridden,
                    consumer_id=self.consumer_id,
                ),
            )

        return Settlement(
            fare=computed if overridden else authoritative,
            source=SettlementSource.COMPUTED if overridden else SettlementSource.AUTHORITATIVE,
            attempt=state.attempt,
            computed_fare=computed,
            authoritative_fare=authoritative,
            quote=quote,
        )

    def _fallback_settlement(self, state: ReconciliationState) -> Settlement:
        fare = state.fallback_fare
        quote: FareQuote | None = None
        if fare is None and self.configuration is not None:
            # Nothing known for this episode: price it from the hardcoded schedule
            quote = default_quote(self.configuration)
            fare = quote.total_price
        logger.warning(
            f"Max attempts ({state.max_attempts}) exceeded for {self.consumer_id}, "
            f"settling on fallback fare {fare}"
        )
        return Settlement(
            fare=fare,
            source=SettlementSource.FALLBACK,
            attempt=state.attempt,
            computed_fare=state.last_computed_fare,
            authoritative_fare=state.authoritative_fare,
            quote=quote,
        )

    def _settle(self, state: ReconciliationState, settlement: Settlement) -> None:
        state.calculating = False
        state.transition_to(ReconciliationPhase.SETTLED)
        state.settled_fare = settlement.fare
        state.settled_source = settlement.source
        state.last_settled_at = self._scheduler.now()
        self.last_settlement = settlement
        fare_settlements.labels(
            trip_kind=state.trip_kind.value, source=settlement.source.value
        ).inc()
        logger.info(f"Settled on {settlement.fare} ({settlement.source.value})")

        if settlement.fare is not None:
            if self._mirror is not None:
                self._mirror.record(
                    state.trip_kind, state.vehicle_id, settlement.fare, settlement.source.value
                )
            if settlement.source != SettlementSource.FALLBACK:
                timestamp = self._clock.now()
                state.last_event_timestamp = max(state.last_event_timestamp, timestamp)
                self._bus.publish(
                    FareEventType.FARE_CALCULATED,
                    FareCalculatedEvent(
                        timestamp=timestamp,
                        trip_kind=state.trip_kind,
                        vehicle_id=state.vehicle_id,
                        fare=settlement.fare,
                        source=(
                            settlement.quote.source if settlement.quote else FareSource.FRESH
                        ),
                        publisher_id=self.consumer_id,
                    ),
                )

        if self._on_settled is not None:
            try:
                self._on_settled(settlement)
            except Exception:
                logger.exception(f"Settlement callback for {self.consumer_id} failed")

        if state.pending_recalculation and state is self.state:
            state.pending_recalculation = False
            self.trigger("recalculation requested during calculation")
        else:
            self._idle.set()

    def _tracks(self, trip_kind: object, vehicle_id: str | None) -> bool:
        state = self.state
        if state is None:
            return False
        if trip_kind is not None and trip_kind != state.trip_kind:
            return False
        return vehicle_id is None or vehicle_id == state.vehicle_id

    def _on_fare_calculated(self, event: FareCalculatedEvent) -> None:
        state = self.state
        if state is None or event.publisher_id == self.consumer_id:
            return
        if not self._tracks(event.trip_kind, event.vehicle_id):
            return
        if event.timestamp <= state.last_event_timestamp:
            return
        state.last_event_timestamp = event.timestamp
        if event.fare in (state.settled_fare, state.last_computed_fare):
            return

        logger.debug(f"{self.consumer_id} received fare {event.fare} from {event.publisher_id}")
        state.authoritative_fare = event.fare
        self.trigger("sibling fare")

    def _on_cab_selected(self, event: CabSelectedEvent) -> None:
        configuration = self.configuration
        if configuration is None or event.trip_kind != configuration.trip_kind:
            return
        if normalize_vehicle_id(event.vehicle_id) == configuration.vehicle_id:
            self.trigger("cab selected")
            return
        self.track(TripConfiguration(vehicle_id=event.vehicle_id, trip=configuration.trip))

    def _on_schedule_event(self, event: FareEvent) -> None:
        trip_kind = getattr(event, "trip_kind", None)
        vehicle_id = getattr(event, "vehicle_id", None)
        vehicle_ids = getattr(event, "vehicle_ids", None)
        if vehicle_ids and self.state is not None and self.state.vehicle_id not in vehicle_ids:
            return
        if self._tracks(trip_kind, vehicle_id):
            self.trigger("fare schedules changed")
