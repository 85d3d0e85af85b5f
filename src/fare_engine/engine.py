"""Composition root wiring the shared fare components together."""

import logging
from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from .cache.coordinator import RequestCoordinator
from .cache.fare_cache import FareCache
from .core.clock import Clock, SystemClock
from .core.scheduler import Scheduler
from .events.bus import EventBus
from .persistence.database import init_database
from .persistence.mirror import SettledFareMirror
from .reconciliation.loop import FareReconciler, Settlement
from .schedules import Schedule, TripKind
from .service import FareService
from .settings import EngineSettings, Settings, get_settings
from .transport.client import FareApiClient

logger = logging.getLogger(__name__)


class FareBackend(Protocol):
    async def fetch_schedule(self, trip_kind: TripKind, vehicle_id: str) -> Schedule: ...

    async def fetch_all(self, trip_kind: TripKind) -> dict[str, Schedule]: ...

    async def update_schedule(
        self, trip_kind: TripKind, vehicle_id: str, schedule: Schedule
    ) -> dict[str, Any]: ...


def build_mirror(settings: EngineSettings) -> SettledFareMirror:
    """Persistent mirror when enabled and creatable, session-only otherwise."""
    if not settings.mirror_enabled:
        return SettledFareMirror()
    try:
        return SettledFareMirror(init_database(settings.mirror_db_path))
    except (OSError, SQLAlchemyError) as e:
        logger.warning(
            f"Settled fare mirror unavailable at {settings.mirror_db_path}, "
            f"keeping settled fares for this session only: {e}"
        )
        return SettledFareMirror()


class FareEngine:
    """One cache, one coordinator and one bus shared by every consumer.

    Reconcilers created here all see the same cache and event bus, which is
    what lets independent consumers converge on one fare.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Clock | None = None,
        backend: FareBackend | None = None,
        mirror: SettledFareMirror | None = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.bus = EventBus()
        self.coordinator = RequestCoordinator()
        self.backend: FareBackend = backend or FareApiClient(self.settings.api, self.clock)
        self.cache = FareCache(
            self.backend,
            self.coordinator,
            self.bus,
            clock=self.clock,
            ttl_seconds=self.settings.cache.ttl_seconds,
            bulk_ttl_seconds=self.settings.cache.bulk_ttl_seconds,
        )
        self.mirror = mirror if mirror is not None else build_mirror(self.settings.engine)
        self.service = FareService(self.cache, self.backend, self.bus, self.clock, self.mirror)
        self._reconcilers: dict[str, FareReconciler] = {}

    def create_reconciler(
        self,
        consumer_id: str,
        on_settled: Callable[[Settlement], None] | None = None,
    ) -> FareReconciler:
        """Create and start a reconciler; consumer ids must be unique."""
        if consumer_id in self._reconcilers:
            raise ValueError(f"Reconciler {consumer_id!r} already exists")
        reconciler = FareReconciler(
            consumer_id,
            self.service,
            self.bus,
            settings=self.settings.reconciliation,
            scheduler=Scheduler(),
            clock=self.clock,
            mirror=self.mirror,
            on_settled=on_settled,
        )
        reconciler.start()
        self._reconcilers[consumer_id] = reconciler
        return reconciler

    async def release_reconciler(self, consumer_id: str) -> None:
        reconciler = self._reconcilers.pop(consumer_id, None)
        if reconciler is not None:
            await reconciler.close()

    async def aclose(self) -> None:
        for consumer_id in list(self._reconcilers):
            await self.release_reconciler(consumer_id)
        logger.info("Fare engine closed")
