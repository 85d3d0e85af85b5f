import os

# Keep test runs from writing a mirror database into the working tree.
os.environ.setdefault("FARE_MIRROR_ENABLED", "false")

from pathlib import Path

import pytest

from fare_engine.cache.coordinator import RequestCoordinator
from fare_engine.cache.fare_cache import FareCache
from fare_engine.core.scheduler import Scheduler
from fare_engine.events.bus import EventBus
from fare_engine.persistence.database import init_database
from fare_engine.persistence.mirror import SettledFareMirror
from fare_engine.reconciliation.loop import FareReconciler
from fare_engine.service import FareService
from fare_engine.settings import ReconciliationSettings
from tests.fakes import FakeClock, FakeFareBackend


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced wall clock."""
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def coordinator() -> RequestCoordinator:
    return RequestCoordinator()


@pytest.fixture
def backend() -> FakeFareBackend:
    """In-memory fare API with sample sedan/ertiga schedules."""
    return FakeFareBackend()


@pytest.fixture
def fare_cache(backend, coordinator, bus, clock) -> FareCache:
    return FareCache(backend, coordinator, bus, clock=clock, ttl_seconds=300, bulk_ttl_seconds=300)


@pytest.fixture
def mirror() -> SettledFareMirror:
    """Session-only mirror without a database."""
    return SettledFareMirror()


@pytest.fixture
def temp_mirror_db(tmp_path: Path) -> str:
    return str(tmp_path / "mirror.db")


@pytest.fixture
def sqlite_mirror(temp_mirror_db: str) -> SettledFareMirror:
    return SettledFareMirror(init_database(temp_mirror_db))


@pytest.fixture
def fare_service(fare_cache, backend, bus, clock, mirror) -> FareService:
    return FareService(fare_cache, backend, bus, clock=clock, mirror=mirror)


@pytest.fixture
def fast_reconciliation() -> ReconciliationSettings:
    """Short timers so reconciliation tests finish in milliseconds."""
    return ReconciliationSettings(
        debounce_seconds=0.01,
        throttle_seconds=0.02,
        max_attempts=3,
        reset_interval_seconds=60.0,
        significant_difference=10.0,
        override_difference=50.0,
    )


@pytest.fixture
async def make_reconciler(fare_service, bus, clock, mirror, fast_reconciliation):
    """Factory for started reconcilers; all are closed after the test."""
    created: list[FareReconciler] = []

    def factory(consumer_id: str = "booking-summary", **kwargs) -> FareReconciler:
        kwargs.setdefault("settings", fast_reconciliation)
        reconciler = FareReconciler(
            consumer_id,
            fare_service,
            bus,
            scheduler=Scheduler(),
            clock=clock,
            mirror=mirror,
            **kwargs,
        )
        reconciler.start()
        created.append(reconciler)
        return reconciler

    yield factory

    for reconciler in created:
        await reconciler.close()
