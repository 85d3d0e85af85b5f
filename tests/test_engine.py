import pytest

from fare_engine.engine import FareEngine, build_mirror
from fare_engine.events.schemas import FareEventType
from fare_engine.fare import AirportTrip
from fare_engine.reconciliation import TripConfiguration
from fare_engine.settings import EngineSettings, Settings
from fare_engine.transport.client import FareApiClient
from tests.fakes import FakeClock, FakeFareBackend


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        engine=EngineSettings(mirror_enabled=True, mirror_db_path=str(tmp_path / "mirror.db"))
    )


@pytest.fixture
async def engine(settings):
    engine = FareEngine(settings, clock=FakeClock(), backend=FakeFareBackend())
    yield engine
    await engine.aclose()


@pytest.mark.unit
class TestBuildMirror:
    def test_disabled_mirror_is_session_only(self):
        assert not build_mirror(EngineSettings(mirror_enabled=False)).persistent

    def test_enabled_mirror_creates_database(self, tmp_path):
        db_path = tmp_path / "nested" / "mirror.db"
        mirror = build_mirror(EngineSettings(mirror_enabled=True, mirror_db_path=str(db_path)))

        assert mirror.persistent
        assert db_path.exists()

    def test_unwritable_location_falls_back_to_session_mirror(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        settings = EngineSettings(
            mirror_enabled=True, mirror_db_path=str(blocker / "mirror.db")
        )

        mirror = build_mirror(settings)

        assert not mirror.persistent
        assert "session only" in caplog.text


@pytest.mark.unit
class TestFareEngine:
    async def test_engine_starts_without_mirror_database(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        settings = Settings(
            engine=EngineSettings(mirror_db_path=str(blocker / "nested" / "mirror.db"))
        )

        engine = FareEngine(settings, clock=FakeClock(), backend=FakeFareBackend())
        quote = await engine.service.quote("sedan", AirportTrip(distance_km=45))

        assert not engine.mirror.persistent
        assert quote.total_price == 2070
        await engine.aclose()

    def test_default_backend_is_http_client(self):
        engine = FareEngine(Settings(engine=EngineSettings(mirror_enabled=False)))
        assert isinstance(engine.backend, FareApiClient)
        assert engine.service.cache is engine.cache

    async def test_reconciler_ids_are_unique(self, engine):
        engine.create_reconciler("booking-summary")
        with pytest.raises(ValueError):
            engine.create_reconciler("booking-summary")

    async def test_release_unsubscribes(self, engine):
        engine.create_reconciler("cab-list")
        assert engine.bus.subscriber_count(FareEventType.FARE_CALCULATED) == 1

        await engine.release_reconciler("cab-list")
        await engine.release_reconciler("cab-list")

        assert engine.bus.subscriber_count(FareEventType.FARE_CALCULATED) == 0

    async def test_consumers_share_one_fetch(self, engine):
        config = TripConfiguration(vehicle_id="sedan", trip=AirportTrip(distance_km=45))
        summary = engine.create_reconciler("booking-summary")
        cab_list = engine.create_reconciler("cab-list")

        summary.track(config)
        cab_list.track(config)
        await summary.wait_idle()
        await cab_list.wait_idle()

        assert summary.display_fare == cab_list.display_fare == 2070
        assert len(engine.backend.fetch_calls) == 1

    async def test_settled_fare_survives_restart(self, settings):
        config = TripConfiguration(vehicle_id="sedan", trip=AirportTrip(distance_km=45))
        first = FareEngine(settings, clock=FakeClock(), backend=FakeFareBackend())
        reconciler = first.create_reconciler("booking-summary")
        reconciler.track(config)
        await reconciler.wait_idle()
        await first.aclose()

        second = FareEngine(settings, clock=FakeClock(), backend=FakeFareBackend())
        try:
            restored = second.create_reconciler("booking-summary")
            restored.track(config)
            assert restored.display_fare == 2070
        finally:
            await second.aclose()
