import pytest
from pydantic import ValidationError

from fare_engine.schedules import TripKind
from fare_engine.settings import (
    CacheSettings,
    EngineSettings,
    FareAPISettings,
    ReconciliationSettings,
    Settings,
    get_settings,
)


@pytest.mark.unit
class TestCacheSettings:
    def test_defaults(self):
        settings = CacheSettings()
        assert settings.ttl_seconds == 300.0
        assert settings.bulk_ttl_seconds == 300.0

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FARE_CACHE_TTL_SECONDS", "60")
        assert CacheSettings().ttl_seconds == 60.0

    def test_validation(self):
        with pytest.raises(ValidationError):
            CacheSettings(ttl_seconds=0)


@pytest.mark.unit
class TestFareAPISettings:
    def test_defaults(self):
        settings = FareAPISettings()
        assert settings.base_url == "http://localhost:8080"
        assert settings.timeout_seconds == 5.0
        assert settings.deadline_seconds == 8.0
        assert settings.fetch_path(TripKind.AIRPORT) == "/api/airport-fares.php"
        assert settings.update_path(TripKind.LOCAL) == "/api/admin/direct-local-fares.php"

    def test_url_validation(self):
        with pytest.raises(ValidationError):
            FareAPISettings(base_url="ftp://fares.example.com")

    def test_trailing_slash_stripped(self):
        assert FareAPISettings(base_url="https://fares.example.com/").base_url == (
            "https://fares.example.com"
        )

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FARE_API_BASE_URL", "https://api.example.com")
        monkeypatch.setenv("FARE_API_MAX_RETRIES", "4")

        settings = FareAPISettings()
        assert settings.base_url == "https://api.example.com"
        assert settings.max_retries == 4


@pytest.mark.unit
class TestReconciliationSettings:
    def test_defaults(self):
        settings = ReconciliationSettings()
        assert settings.debounce_seconds == 0.1
        assert settings.throttle_seconds == 0.5
        assert settings.max_attempts == 3
        assert settings.reset_interval_seconds == 15.0
        assert settings.significant_difference == 10.0
        assert settings.override_difference == 50.0
        assert settings.override_trip_kinds == [TripKind.AIRPORT]

    def test_override_threshold_must_not_be_below_significant(self):
        with pytest.raises(ValidationError):
            ReconciliationSettings(significant_difference=100, override_difference=50)

    def test_override_trip_kinds_from_env(self, monkeypatch):
        monkeypatch.setenv("RECON_OVERRIDE_TRIP_KINDS", '["airport", "local"]')
        settings = ReconciliationSettings()
        assert settings.override_trip_kinds == [TripKind.AIRPORT, TripKind.LOCAL]

    def test_max_attempts_validation(self):
        with pytest.raises(ValidationError):
            ReconciliationSettings(max_attempts=0)


@pytest.mark.unit
class TestEngineSettings:
    def test_log_level_validation(self):
        with pytest.raises(ValidationError):
            EngineSettings(log_level="VERBOSE")

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FARE_LOG_FORMAT", "json")
        monkeypatch.setenv("FARE_MIRROR_DB_PATH", "/tmp/mirror.db")

        settings = EngineSettings()
        assert settings.log_format == "json"
        assert settings.mirror_db_path == "/tmp/mirror.db"


@pytest.mark.unit
class TestSettings:
    def test_get_settings_aggregates_sections(self):
        settings = get_settings()
        assert isinstance(settings, Settings)
        assert isinstance(settings.cache, CacheSettings)
        assert isinstance(settings.api, FareAPISettings)
        assert isinstance(settings.reconciliation, ReconciliationSettings)

    def test_mirror_disabled_for_tests(self):
        assert get_settings().engine.mirror_enabled is False
